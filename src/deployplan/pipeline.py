# pipeline.py
from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .compiler import PipelineGraph
from .errors import PipelineBuiltError
from .model import Blueprint, StageDeployment, Step, Wave


class DeploymentEngine(Protocol):
    """Turns a finished Blueprint into something that can run."""

    def build_deployment(self, blueprint: Blueprint) -> None:
        ...


class PlanEngine:
    """
    Engine that only compiles: the plan is kept on `.plan` for whoever
    executes it (or prints it).
    """

    def __init__(self, self_mutation: bool = False):
        self.self_mutation = self_mutation
        self.plan: Optional[PipelineGraph] = None

    def build_deployment(self, blueprint: Blueprint) -> None:
        self.plan = PipelineGraph(blueprint, self_mutation=self.self_mutation)


class Pipeline:
    """
    Collects stages and waves, then hands the Blueprint to an engine once.

    Nothing can be added after build().
    """

    def __init__(self, synth_step: Step, engine: DeploymentEngine):
        self.engine = engine
        self.blueprint = Blueprint(synth_step=synth_step)
        self._built = False

    @property
    def built(self) -> bool:
        return self._built

    def add_stage(
        self,
        stage: StageDeployment,
        *,
        pre: Optional[Iterable[Step]] = None,
        post: Optional[Iterable[Step]] = None,
    ) -> StageDeployment:
        if self._built:
            raise PipelineBuiltError("add_stage: can't add stages anymore after build() has been called")
        return self.blueprint.add_stage(stage, pre=pre, post=post)

    def add_wave(
        self,
        id: str,
        *,
        pre: Optional[Iterable[Step]] = None,
        post: Optional[Iterable[Step]] = None,
    ) -> Wave:
        if self._built:
            raise PipelineBuiltError("add_wave: can't add waves anymore after build() has been called")
        return self.blueprint.add_wave(id, pre=pre, post=post)

    def build(self) -> None:
        if self._built:
            raise PipelineBuiltError("build() has already been called: can only call it once")
        self.engine.build_deployment(self.blueprint)
        self._built = True
