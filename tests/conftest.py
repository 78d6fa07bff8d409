"""
pytest configuration

Goals:
- keep tests fast and deterministic
- silence the [Terrain] / [Metrics] diagnostics
- shrink the default grid unless a test overrides explicitly
"""

import os
import sys

import pytest

# Ensure project root on sys.path for 'pymicro' and 'scripts' imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def _small_quiet_env(monkeypatch):
    # Small grid by default (tests can override via monkeypatch in the test)
    monkeypatch.setenv("MC_N", os.getenv("MC_N", "24"))
    monkeypatch.setenv("MC_SEED", os.getenv("MC_SEED", "1234"))
    # No diagnostics output
    monkeypatch.setenv("MC_DIAG", "0")
    monkeypatch.setenv("MC_TERRAIN_DIAG", "0")
    yield
