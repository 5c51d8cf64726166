from .dsl import blueprint, docker_asset, file_asset, matrix, sh, source, stack, stage, synth, wave
from .compiler import PipelineGraph
from .graph import Graph, GraphNode, GraphNodeCollection
from .model import Blueprint, FileSet, ShellStep, SourceStep, StackAsset, StackDeployment, StageDeployment, Step, Wave
from .pipeline import Pipeline, PlanEngine

__all__ = [
    "blueprint", "docker_asset", "file_asset", "matrix", "sh", "source", "stack", "stage", "synth", "wave",
    "PipelineGraph", "Graph", "GraphNode", "GraphNodeCollection",
    "Blueprint", "FileSet", "ShellStep", "SourceStep", "StackAsset", "StackDeployment", "StageDeployment", "Step", "Wave",
    "Pipeline", "PlanEngine",
]
