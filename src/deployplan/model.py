# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .errors import PlanError

# Top-level groups the compiler creates next to the waves
RESERVED_GROUP_NAMES = ("Build", "Source", "Assets", "UpdatePipeline")


@dataclass(eq=False)
class FileSet:
    """An artifact handle. Owned by the Step that produces it."""
    id: str
    _producer: Optional[Step] = field(default=None, init=False, repr=False)

    @property
    def producer(self) -> Step:
        if self._producer is None:
            raise PlanError(
                f"FileSet '{self.id}' doesn't have a producer; call 'produced_by()'",
                node=self.id,
            )
        return self._producer

    def produced_by(self, producer: Step | None) -> None:
        self._producer = producer

    def __str__(self) -> str:
        return f"FileSet({self.id})"


@dataclass(eq=False)
class Step:
    """
    A unit of work in the pipeline.

    Identity is the object itself; `id` is only its name inside a group.

    Dependencies come from two places:
      - producers of the file sets listed in `inputs`
      - steps listed explicitly in `depends_on`
    """
    id: str
    inputs: List[FileSet] = field(default_factory=list)
    depends_on: List[Step] = field(default_factory=list, repr=False)

    # Name of the primary output directory, if this step produces one
    output: Optional[str] = None
    primary_output: Optional[FileSet] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.output is not None:
            self.primary_output = FileSet(self.output)
            self.primary_output.produced_by(self)

    @property
    def dependency_steps(self) -> list[Step]:
        seen: list[Step] = []
        for dep in [fs.producer for fs in self.inputs] + list(self.depends_on):
            if not any(dep is s for s in seen):
                seen.append(dep)
        return seen

    def add_step_dependency(self, step: Step) -> None:
        self.depends_on.append(step)

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.id})"


@dataclass(eq=False)
class ShellStep(Step):
    """A step that runs shell commands."""
    commands: List[str] = field(default_factory=list)
    install_commands: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(eq=False)
class SourceStep(Step):
    """
    A step that fetches external input (a repository checkout).

    Always produces a primary output named after the repository.
    """
    repo: str = ""
    branch: str = "main"

    def __post_init__(self) -> None:
        if self.output is None:
            self.output = self.repo or self.id
        super().__post_init__()


class AssetType(str, Enum):
    FILE = "file"
    DOCKER_IMAGE = "docker-image"


@dataclass(frozen=True)
class StackAsset:
    """
    A file or container image a stack needs published before it deploys.

    `asset_id` identifies the asset (dedup key); `asset_selector` identifies
    one destination/variant of it.
    """
    asset_id: str
    asset_selector: str
    asset_type: AssetType = AssetType.FILE


@dataclass(eq=False)
class StackDeployment:
    """A single deployable unit."""
    stack_name: str
    required_assets: List[StackAsset] = field(default_factory=list)
    depends_on_stacks: List[StackDeployment] = field(default_factory=list, repr=False)

    # Overrides the shared cloud assembly for this stack only
    custom_cloud_assembly: Optional[FileSet] = None

    def add_stack_dependency(self, stack: StackDeployment) -> None:
        self.depends_on_stacks.append(stack)


@dataclass(eq=False)
class StageDeployment:
    """A named group of stacks deployed together, bracketed by pre/post steps."""
    stage_name: str
    stacks: List[StackDeployment] = field(default_factory=list)
    pre: List[Step] = field(default_factory=list)
    post: List[Step] = field(default_factory=list)

    def add_pre(self, *steps: Step) -> None:
        self.pre.extend(steps)

    def add_post(self, *steps: Step) -> None:
        self.post.extend(steps)


@dataclass(eq=False)
class Wave:
    """A sequential phase of the deployment. Stages inside it run in parallel."""
    id: str
    stages: List[StageDeployment] = field(default_factory=list)
    pre: List[Step] = field(default_factory=list)
    post: List[Step] = field(default_factory=list)

    def add_stage(
        self,
        stage: StageDeployment,
        *,
        pre: Optional[Iterable[Step]] = None,
        post: Optional[Iterable[Step]] = None,
    ) -> StageDeployment:
        if any(s.stage_name == stage.stage_name for s in self.stages):
            raise ValueError(f"Wave '{self.id}' already has a stage named '{stage.stage_name}'")
        stage.add_pre(*(pre or []))
        stage.add_post(*(post or []))
        self.stages.append(stage)
        return stage

    def add_pre(self, *steps: Step) -> None:
        self.pre.extend(steps)

    def add_post(self, *steps: Step) -> None:
        self.post.extend(steps)

    @property
    def graph_name(self) -> str:
        """Name of the wave's group in the plan: a lone stage stands in for its wave."""
        if len(self.stages) == 1:
            return self.stages[0].stage_name
        return self.id


def check_wave_names(waves: Iterable[Wave]) -> None:
    """Waves share the plan's top level with the reserved groups; names must not clash."""
    seen: List[str] = []
    for wave in waves:
        name = wave.graph_name
        if name in RESERVED_GROUP_NAMES:
            raise ValueError(f"Wave '{wave.id}' uses the reserved name '{name}'")
        if name in seen:
            raise ValueError(f"Duplicate top-level name: {name}")
        seen.append(name)


@dataclass(eq=False)
class Blueprint:
    """
    The full deployment plan: one synth step + an ordered list of waves.

    The synth step must produce the cloud assembly (its primary output).
    """
    synth_step: Step
    waves: List[Wave] = field(default_factory=list)

    def add_wave(
        self,
        id: str,
        *,
        pre: Optional[Iterable[Step]] = None,
        post: Optional[Iterable[Step]] = None,
    ) -> Wave:
        if any(w.id == id for w in self.waves):
            raise ValueError(f"Duplicate wave id: {id}")
        wave = Wave(id=id, pre=list(pre or []), post=list(post or []))
        check_wave_names(self.waves + [wave])
        self.waves.append(wave)
        return wave

    def add_stage(
        self,
        stage: StageDeployment,
        *,
        pre: Optional[Iterable[Step]] = None,
        post: Optional[Iterable[Step]] = None,
    ) -> StageDeployment:
        """Add a stage in a wave of its own, named after the stage."""
        wave = Wave(id=stage.stage_name, stages=[stage])
        check_wave_names(self.waves + [wave])
        return self.add_wave(stage.stage_name).add_stage(stage, pre=pre, post=post)
