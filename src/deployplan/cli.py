# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from deployplan.compiler import PipelineGraph, describe_annotation
from deployplan.errors import PlanError
from deployplan.graph import Graph, GraphNode
from deployplan.loader import DEFAULT_BLUEPRINT_FILE, find_blueprint_files, load_blueprint
from deployplan.ui.console import Console, get_console, set_console


def discover_blueprint(blueprint_arg: str | None) -> Path:
    """
    Discover blueprint file from argument or default.

    Args:
        blueprint_arg: Optional blueprint argument from CLI

    Returns:
        Path to blueprint file

    Raises:
        SystemExit: If the blueprint cannot be found or several exist
    """
    console = get_console()

    if blueprint_arg:
        path = Path(blueprint_arg)
        if not path.exists() and path.suffix != ".py":
            path = Path(str(path) + ".py")
        if not path.exists():
            console.print_error(
                "Blueprint file not found",
                f"Could not find blueprint file: {blueprint_arg}",
                suggestion="Create a blueprint file or specify a different path:\n  deployplan plan --blueprint my_blueprint.py",
            )
            sys.exit(1)
        return path

    files = find_blueprint_files(".")

    if len(files) == 0:
        console.print_error(
            "No blueprint file found",
            "Could not find any blueprint files.",
            details=[
                "Looked for:",
                f"  {DEFAULT_BLUEPRINT_FILE}",
                "  *_blueprint.py",
            ],
            suggestion=f"Create a blueprint file:\n  {DEFAULT_BLUEPRINT_FILE}\n\nOr specify one explicitly:\n  deployplan plan --blueprint my_blueprint.py",
        )
        sys.exit(1)

    if len(files) > 1:
        file_list = "\n".join(f"  {f}" for f in files)
        console.print_error(
            "Multiple blueprint files found",
            "Found multiple blueprint files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a blueprint explicitly:\n  deployplan plan --blueprint {DEFAULT_BLUEPRINT_FILE}",
        )
        sys.exit(1)

    return files[0]


def _label(node: GraphNode) -> str:
    data = describe_annotation(node.data)
    label = data.get("type", "")
    if data.get("build_step"):
        label += ", build"
    if data.get("assets"):
        label += ", " + " ".join(data["assets"])
    return label


def _groups(graph: Graph) -> list[Graph]:
    out = [graph]
    out.extend(n for n in graph.descendants() if isinstance(n, Graph))
    return out


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """deployplan: compile deployment blueprints into dependency graphs."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--blueprint",
    "blueprint_path",
    default=None,
    help=f"Blueprint file path (defaults to {DEFAULT_BLUEPRINT_FILE} if present)",
)
@click.option(
    "--self-mutation/--no-self-mutation",
    default=False,
    envvar="DEPLOYPLAN_SELF_MUTATION",
    show_default=True,
    help="Add an UpdatePipeline step that every wave waits for",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the plan as JSON")
@click.pass_context
def plan(ctx, blueprint_path, self_mutation, as_json):
    """Compile a blueprint and print the resulting plan."""
    console = get_console()

    path = discover_blueprint(blueprint_path)

    try:
        bp = load_blueprint(path)
        compiled = PipelineGraph(bp, self_mutation=self_mutation)
    except PlanError as e:
        console.print_error(
            "Failed to compile blueprint",
            e.message,
            details=str(e).splitlines()[1:] or None,
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)
    except Exception as e:
        console.print_error(
            "Failed to load blueprint",
            f"Could not load blueprint from {path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(compiled.to_dict(), indent=2))
        return

    console.print_plan_started(
        blueprint=path.name,
        wave_count=len(bp.waves),
        self_mutation=self_mutation,
    )
    console.print_tree(compiled.graph, label=_label)

    console.print_header("ORDER")
    try:
        for group in _groups(compiled.graph):
            console.print_layers(group)
    except PlanError as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option(
    "--blueprint",
    "blueprint_path",
    default=None,
    help=f"Blueprint file path (defaults to {DEFAULT_BLUEPRINT_FILE} if present)",
)
@click.pass_context
def waves(ctx, blueprint_path):
    """List waves, stages and stacks of a blueprint without compiling it."""
    console = get_console()

    path = discover_blueprint(blueprint_path)

    try:
        bp = load_blueprint(path)
    except Exception as e:
        console.print_error(
            "Failed to load blueprint",
            f"Could not load blueprint from {path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)

    console.print_waves([
        (w.id, [(s.stage_name, [st.stack_name for st in s.stacks]) for s in w.stages])
        for w in bp.waves
    ])


if __name__ == "__main__":
    cli()
