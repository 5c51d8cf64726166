# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import List

from .model import Blueprint
from .pipeline import Pipeline

DEFAULT_BLUEPRINT_FILE = "deployplan_blueprint.py"


def find_blueprint_files(directory: str | Path = ".") -> List[Path]:
    """
    Find all blueprint files in a directory.

    Looks for deployplan_blueprint.py and any other *_blueprint.py.
    """
    root = Path(directory)
    found: List[Path] = []

    default = root / DEFAULT_BLUEPRINT_FILE
    if default.exists():
        found.append(default)

    for path in root.glob("*_blueprint.py"):
        if path != default:
            found.append(path)

    return sorted(found)


def load_blueprint(path: str | Path) -> Blueprint:
    """
    Load a blueprint from a python file path.

    The file must define either:
      - define_blueprint() -> Blueprint | Pipeline
      - BLUEPRINT = Blueprint | Pipeline

    For a Pipeline, its blueprint is returned (the pipeline is not built).
    """
    bp_path = Path(path).expanduser().resolve()
    if not bp_path.exists():
        raise FileNotFoundError(f"Blueprint file not found: {bp_path}")
    if bp_path.suffix != ".py":
        raise ValueError(f"Blueprint must be a .py file, got: {bp_path.name}")

    module_name = f"deployplan_blueprint_{bp_path.stem}"
    globals_dict = runpy.run_path(str(bp_path), run_name=module_name)

    result = None
    if "define_blueprint" in globals_dict and callable(globals_dict["define_blueprint"]):
        result = globals_dict["define_blueprint"]()
    elif "BLUEPRINT" in globals_dict:
        result = globals_dict["BLUEPRINT"]

    if isinstance(result, Pipeline):
        result = result.blueprint

    if not isinstance(result, Blueprint):
        raise TypeError(
            "Blueprint file must return/define a Blueprint (or Pipeline). "
            "Define define_blueprint() -> Blueprint or BLUEPRINT = blueprint(...)."
        )

    return result
