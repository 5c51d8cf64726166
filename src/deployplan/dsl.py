# dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from .model import (
    AssetType,
    Blueprint,
    FileSet,
    ShellStep,
    SourceStep,
    StackAsset,
    StackDeployment,
    StageDeployment,
    Step,
    Wave,
    check_wave_names,
)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    id: str,
    *commands: str,
    inputs: Optional[List[FileSet]] = None,
    depends_on: Optional[List[Step]] = None,
    output: str | None = None,
    env: Optional[Dict[str, str]] = None,
    install: Optional[List[str]] = None,
) -> ShellStep:
    """Create a shell step."""
    return ShellStep(
        id=id,
        inputs=list(inputs or []),
        depends_on=list(depends_on or []),
        output=output,
        commands=list(commands),
        install_commands=list(install or []),
        env={k: str(v) for k, v in (env or {}).items()},
    )


def source(repo: str, branch: str = "main") -> SourceStep:
    """A repository checkout. Always lands in the "Source" group."""
    return SourceStep(id=repo, repo=repo, branch=branch)


def synth(
    *commands: str,
    input: Step | FileSet | None = None,
    output: str = "cdk.out",
    install: Optional[List[str]] = None,
) -> ShellStep:
    """
    The synth step: turns the sources into the cloud assembly.

    `input` may be a step (its primary output is used) or a file set.
    """
    inputs: List[FileSet] = []
    if isinstance(input, Step):
        if input.primary_output is None:
            raise ValueError(f"synth input {input} has no primary output")
        inputs.append(input.primary_output)
    elif input is not None:
        inputs.append(input)

    return sh(
        "Synth",
        *(commands or ("npx cdk synth",)),
        inputs=inputs,
        output=output,
        install=install,
    )


# ---------------------------------------------------------------------
# Deployment helpers
# ---------------------------------------------------------------------

def file_asset(asset_id: str, selector: str | None = None) -> StackAsset:
    return StackAsset(asset_id, selector or f"{asset_id}:current", AssetType.FILE)


def docker_asset(asset_id: str, selector: str | None = None) -> StackAsset:
    return StackAsset(asset_id, selector or f"{asset_id}:current", AssetType.DOCKER_IMAGE)


def stack(
    name: str,
    *assets: StackAsset,
    depends_on: Optional[List[StackDeployment]] = None,
    cloud_assembly: FileSet | None = None,
) -> StackDeployment:
    return StackDeployment(
        stack_name=name,
        required_assets=list(assets),
        depends_on_stacks=list(depends_on or []),
        custom_cloud_assembly=cloud_assembly,
    )


def stage(
    name: str,
    *stacks: StackDeployment,
    pre: Optional[List[Step]] = None,
    post: Optional[List[Step]] = None,
) -> StageDeployment:
    names = [s.stack_name for s in stacks]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate stack names in stage {name!r}: {dupes}")
    return StageDeployment(
        stage_name=name,
        stacks=list(stacks),
        pre=list(pre or []),
        post=list(post or []),
    )


def wave(
    id: str,
    *stages: StageDeployment,
    pre: Optional[List[Step]] = None,
    post: Optional[List[Step]] = None,
) -> Wave:
    w = Wave(id=id, pre=list(pre or []), post=list(post or []))
    for s in stages:
        w.add_stage(s)
    return w


def blueprint(synth_step: Step, *waves: Wave) -> Blueprint:
    """
    Blueprint definition helper.

    Users can write:
        from deployplan import blueprint, wave, stage, stack, synth, source

        def define_blueprint():
            return blueprint(
                synth(input=source("org/app")),
                wave("Prod", stage("EU", stack("Api"))),
            )

    Or use BLUEPRINT directly:
        BLUEPRINT = blueprint(synth(...), wave(...))
    """
    ids = [w.id for w in waves]
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ValueError(f"Duplicate wave ids found: {dupes}")
    check_wave_names(waves)
    return Blueprint(synth_step=synth_step, waves=list(waves))


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("region", ["eu-west-1", "us-east-1"]).stages(
            lambda r: stage(f"Prod-{r}", stack("Api"))
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def stages(self, builder: Callable[[Any], StageDeployment]) -> List[StageDeployment]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)
