from __future__ import annotations

import pytest

from deployplan.dsl import sh
from deployplan.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def quiet_console():
    """Every test starts with a fresh, non-debug global console."""
    set_console(Console())
    yield
    set_console(Console())


@pytest.fixture
def synth_step():
    return sh("Synth", "npx cdk synth", output="cdk.out")
