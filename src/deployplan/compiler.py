# compiler.py
"""
Turn a deployment Blueprint into a dependency graph.

This module makes all the decisions on how the plan is laid out:
  - which group every step lands in
  - how stacks are split into Prepare / Deploy
  - how assets are published (once per asset id)
  - how pre/post steps bracket a stage or a wave
  - how waves are serialized
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from .errors import GraphInvariantError, MissingOutputError, StepCycleError
from .graph import Graph, GraphNode, GraphNodeCollection
from .model import (
    RESERVED_GROUP_NAMES,
    AssetType,
    Blueprint,
    FileSet,
    SourceStep,
    StackAsset,
    StackDeployment,
    StageDeployment,
    Step,
    Wave,
)
from .ui.console import get_console


# ---------------------------------------------------------------------
# Node annotations (closed set of variants)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class GroupAnnotation:
    type: Literal["group"] = "group"


@dataclass(frozen=True)
class StackGroupAnnotation:
    stack: StackDeployment
    type: Literal["stack-group"] = "stack-group"


@dataclass(frozen=True)
class PublishAssetsAnnotation:
    assets: List[StackAsset]
    type: Literal["publish-assets"] = "publish-assets"

    def add_asset(self, asset: StackAsset) -> None:
        # No duplicates
        if not any(a.asset_selector == asset.asset_selector for a in self.assets):
            self.assets.append(asset)


@dataclass
class StepAnnotation:
    step: Step
    type: Literal["step"] = field(default="step", init=False)
    _is_build_step: bool = field(default=False, init=False, repr=False)

    @property
    def is_build_step(self) -> bool:
        return self._is_build_step

    def mark_build_step(self) -> None:
        if self._is_build_step:
            raise GraphInvariantError("Step is already marked as the build step", node=self.step.id)
        self._is_build_step = True


@dataclass(frozen=True)
class SelfUpdateAnnotation:
    type: Literal["self-update"] = "self-update"


@dataclass(frozen=True)
class PrepareAnnotation:
    stack: StackDeployment
    type: Literal["prepare"] = "prepare"


@dataclass(frozen=True)
class ExecuteAnnotation:
    stack: StackDeployment
    type: Literal["execute"] = "execute"


GraphAnnotation = Union[
    GroupAnnotation,
    StackGroupAnnotation,
    PublishAssetsAnnotation,
    StepAnnotation,
    SelfUpdateAnnotation,
    PrepareAnnotation,
    ExecuteAnnotation,
]


def describe_annotation(data: Optional[GraphAnnotation]) -> Dict[str, Any]:
    """Flatten an annotation into plain data (for printing / JSON)."""
    if data is None:
        return {}
    if isinstance(data, GroupAnnotation):
        return {"type": data.type}
    if isinstance(data, StackGroupAnnotation):
        return {"type": data.type, "stack": data.stack.stack_name}
    if isinstance(data, PublishAssetsAnnotation):
        return {"type": data.type, "assets": [a.asset_selector for a in data.assets]}
    if isinstance(data, StepAnnotation):
        return {"type": data.type, "step": str(data.step), "build_step": data.is_build_step}
    if isinstance(data, SelfUpdateAnnotation):
        return {"type": data.type}
    if isinstance(data, (PrepareAnnotation, ExecuteAnnotation)):
        return {"type": data.type, "stack": data.stack.stack_name}
    raise GraphInvariantError(f"Unknown node annotation: {type(data).__name__}")


# ---------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------

class PipelineGraph:
    """
    Compiles a Blueprint into a Graph. All work happens in the constructor.

    Exposes:
      - graph: the root group ("Build", "Source", "Assets", "UpdatePipeline", waves)
      - cloud_assembly_file_set: the synth step's primary output
      - is_synth_node(node)

    Not safe to share between threads; build one per blueprint.
    """

    def __init__(self, blueprint: Blueprint, *, self_mutation: bool = False):
        self.graph: Graph = Graph.of("", GroupAnnotation())
        self.self_mutate_node: Optional[GraphNode] = None

        self._added: Dict[Step, GraphNode] = {}
        self._in_progress: List[Step] = []
        self._asset_nodes: Dict[str, GraphNode] = {}
        self._top_level: Dict[str, Graph] = {}
        self._file_asset_ctr = 0
        self._docker_asset_ctr = 0

        self._synth_node = self._add_build_step(blueprint.synth_step)
        if isinstance(self._synth_node.data, StepAnnotation):
            self._synth_node.data.mark_build_step()
        self.last_preparation_node: GraphNode = self._synth_node

        cloud_assembly = blueprint.synth_step.primary_output
        if cloud_assembly is None:
            raise MissingOutputError(
                "The synth step must produce the cloud assembly artifact, but doesn't",
                node=str(blueprint.synth_step),
            )
        self.cloud_assembly_file_set: FileSet = cloud_assembly

        if self_mutation:
            stage = self._top_level_graph("UpdatePipeline")
            self.self_mutate_node = GraphNode.of("SelfMutate", SelfUpdateAnnotation())
            stage.add(self.self_mutate_node)

            self.self_mutate_node.depend_on(self._synth_node)
            self.last_preparation_node = self.self_mutate_node

        waves = [self._add_wave(w) for w in blueprint.waves]

        # Make sure the waves deploy sequentially
        for prev, wave in zip(waves, waves[1:]):
            wave.depend_on(prev)
            get_console().print_debug(f"wave {wave.path_id} after {prev.path_id}")

    def is_synth_node(self, node: GraphNode) -> bool:
        return node is self._synth_node

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view of the whole plan (for JSON export)."""
        return _node_to_dict(self.graph)

    # -----------------------------------------------------------------
    # Waves / stages
    # -----------------------------------------------------------------

    def _add_build_step(self, step: Step) -> GraphNode:
        return self._add_and_recurse(step, self._top_level_graph("Build"))

    def _add_wave(self, wave: Wave) -> Graph:
        # A wave with only one stage doesn't get an extra Graph around it
        if len(wave.stages) == 1:
            ret = self._add_stage(wave.stages[0])
        else:
            ret = Graph.of(wave.id, GroupAnnotation(), [self._add_stage(s) for s in wave.stages])

        if ret.id in RESERVED_GROUP_NAMES or self.graph.try_get_child(ret.id) is not None:
            raise GraphInvariantError(
                "Top-level name is already taken",
                node=ret.id,
                details={"wave": wave.id},
            )
        self.graph.add(ret)
        self._add_pre_post(wave.pre, wave.post, ret)
        ret.depend_on(self.last_preparation_node)
        return ret

    def _add_stage(self, stage: StageDeployment) -> Graph:
        ret = Graph.of(stage.stage_name, GroupAnnotation())
        stack_graphs: Dict[StackDeployment, Graph] = {}

        for stack in stage.stacks:
            stack_graph = Graph.of(stack.stack_name, StackGroupAnnotation(stack))
            prepare = GraphNode.of("Prepare", PrepareAnnotation(stack))
            deploy = GraphNode.of("Deploy", ExecuteAnnotation(stack))

            stack_graph.add(prepare, deploy)
            deploy.depend_on(prepare)
            ret.add(stack_graph)
            stack_graphs[stack] = stack_graph

            # Depend on the cloud assembly
            cloud_assembly = stack.custom_cloud_assembly or self.cloud_assembly_file_set
            prepare.depend_on(self._add_and_recurse(cloud_assembly.producer, ret))

            # Depend on assets
            for asset in stack.required_assets:
                prepare.depend_on(self._publish_asset(asset))

        # All stack graphs exist now, wire stack-to-stack ordering
        for stack in stage.stacks:
            for dep in stack.depends_on_stacks:
                dep_graph = stack_graphs.get(dep)
                if dep_graph is not None:
                    stack_graphs[stack].depend_on(dep_graph)

        self._add_pre_post(stage.pre, stage.post, ret)
        return ret

    def _add_pre_post(self, pre: List[Step], post: List[Step], parent: Graph) -> None:
        current_nodes = GraphNodeCollection(parent.nodes)
        for p in pre:
            pre_node = self._add_and_recurse(p, parent)
            current_nodes.depend_on(pre_node)
        for p in post:
            post_node = self._add_and_recurse(p, parent)
            post_node.depend_on(*current_nodes.nodes)

    def _top_level_graph(self, name: str) -> Graph:
        ret = self._top_level.get(name)
        if ret is None:
            if self.graph.try_get_child(name) is not None:
                raise GraphInvariantError(f"Top-level group name is taken by a wave: {name}", node=name)
            ret = Graph.of(name, GroupAnnotation())
            self.graph.add(ret)
            self._top_level[name] = ret
        return ret

    # -----------------------------------------------------------------
    # Steps / assets
    # -----------------------------------------------------------------

    def _add_and_recurse(self, step: Step, parent: Graph) -> GraphNode:
        previous = self._added.get(step)
        if previous is not None:
            if step in self._in_progress:
                cycle = self._in_progress[self._in_progress.index(step):] + [step]
                raise StepCycleError(
                    "Steps depend on each other in a cycle",
                    node=step.id,
                    details={"cycle": " -> ".join(s.id for s in cycle)},
                )
            return previous

        node = GraphNode.of(step.id, StepAnnotation(step))

        # Source steps always go into the top-level "Source" group
        if isinstance(step, SourceStep):
            parent = self._top_level_graph("Source")

        parent.add(node)
        self._added[step] = node
        get_console().print_debug(f"step {step.id} -> {node.path_id}")

        self._in_progress.append(step)
        for dep in step.dependency_steps:
            producer_node = self._add_and_recurse(dep, parent)
            node.depend_on(producer_node)
        self._in_progress.pop()

        return node

    def _publish_asset(self, stack_asset: StackAsset) -> GraphNode:
        assets_graph = self._top_level_graph("Assets")

        asset_node = self._asset_nodes.get(stack_asset.asset_id)
        if asset_node is not None:
            data = asset_node.data
            if not isinstance(data, PublishAssetsAnnotation):
                raise GraphInvariantError(
                    "Asset node has the wrong annotation type",
                    node=asset_node.path_id,
                    details={"type": getattr(data, "type", None)},
                )
            data.add_asset(stack_asset)
            get_console().print_debug(f"asset {stack_asset.asset_id} reuses {asset_node.path_id}")
            return asset_node

        if stack_asset.asset_type is AssetType.FILE:
            self._file_asset_ctr += 1
            id = f"FileAsset{self._file_asset_ctr}"
        else:
            self._docker_asset_ctr += 1
            id = f"DockerAsset{self._docker_asset_ctr}"

        new_node = GraphNode.of(id, PublishAssetsAnnotation([stack_asset]))
        self._asset_nodes[stack_asset.asset_id] = new_node
        assets_graph.add(new_node)
        new_node.depend_on(self.last_preparation_node)
        return new_node


def _node_to_dict(node: GraphNode) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": node.id,
        "path": node.path_id,
        "data": describe_annotation(node.data),
        "depends_on": [d.path_id for d in node.dependencies],
    }
    if isinstance(node, Graph):
        out["children"] = [_node_to_dict(c) for c in node.nodes]
    return out
