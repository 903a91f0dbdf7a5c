"""Shared fixtures.

Tests import ``coverport`` from ``src/`` even when an older copy is
installed in the environment.
"""

import sys
from pathlib import Path

import pytest
import structlog

from_src = str(Path(__file__).resolve().parent.parent / "src")
if from_src not in sys.path:
    sys.path.insert(0, from_src)
for stale in [name for name in sys.modules if name.split(".")[0] == "coverport"]:
    del sys.modules[stale]


@pytest.fixture(autouse=True)
def _isolated_log_context():
    """Per-target bindings and the run id stay inside one test."""
    from coverport.core.logging import clear_run_id

    structlog.contextvars.clear_contextvars()
    clear_run_id()
    yield
    structlog.contextvars.clear_contextvars()
    clear_run_id()
