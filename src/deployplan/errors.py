# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class PlanError(Exception):
    """
    Structured planning error with enough context for:
      - clean CLI output
      - pointing at the offending step / node
      - debugging without full tracebacks
    """
    message: str
    node: str | None = None
    details: dict = field(default_factory=dict)

    kind: ClassVar[str] = "PlanError"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.node:
            lines.append(f"node={self.node}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class MissingOutputError(PlanError):
    """The synth step does not produce the cloud assembly."""
    kind = "MissingOutputError"


class GraphInvariantError(PlanError):
    """Node bookkeeping went wrong. Should never happen."""
    kind = "GraphInvariantError"


class StepCycleError(PlanError):
    """Caller-supplied steps depend on each other in a loop."""
    kind = "StepCycleError"


class DuplicateNodeError(PlanError):
    kind = "DuplicateNodeError"


class GraphCycleError(PlanError):
    kind = "GraphCycleError"


class PipelineBuiltError(PlanError):
    kind = "PipelineBuiltError"
