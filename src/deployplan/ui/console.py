"""Console output formatting utilities for deployplan."""

from __future__ import annotations

import sys
from typing import Callable, Optional

from ..graph import Graph, GraphNode


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show debug lines and stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_plan_started(
        self,
        blueprint: str,
        wave_count: int,
        self_mutation: bool,
    ) -> None:
        """Print plan start information."""
        print("\nPLAN")
        print(f"Blueprint: {blueprint}")
        print(f"Waves: {wave_count}")
        print(f"Self-mutation: {'on' if self_mutation else 'off'}")

    def print_tree(
        self,
        graph: Graph,
        label: Optional[Callable[[GraphNode], str]] = None,
    ) -> None:
        """
        Print the composition tree, one node per line, with its dependencies.

        Args:
            graph: Root of the tree to print (the root itself is not printed)
            label: Optional extra text per node (e.g. the annotation type)
        """
        self.print_header("GRAPH")
        self._print_children(graph, 0, label)

    def _print_children(
        self,
        graph: Graph,
        depth: int,
        label: Optional[Callable[[GraphNode], str]],
    ) -> None:
        for node in graph.nodes:
            line = "  " * depth + node.id
            if label is not None:
                line += f" [{label(node)}]"
            if node.dependencies:
                line += " <- " + ", ".join(d.path_id for d in node.dependencies)
            print(line)
            if isinstance(node, Graph):
                self._print_children(node, depth + 1, label)

    def print_layers(self, graph: Graph) -> None:
        """Print execution order of a group's children, one layer per line."""
        name = graph.path_id or "(root)"
        for idx, layer in enumerate(graph.sorted_layers()):
            print(f"  {name} #{idx + 1}: {', '.join(n.id for n in layer)}")

    def print_waves(self, waves: list[tuple[str, list[tuple[str, list[str]]]]]) -> None:
        """Print waves -> stages -> stacks of a blueprint."""
        self.print_header("WAVES")
        for wave_id, stages in waves:
            print(f"{wave_id}")
            for stage_name, stacks in stages:
                print(f"  {stage_name}: {', '.join(stacks) if stacks else '(no stacks)'}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
