"""Pytest configuration shared by unit and integration tests.

extbuild.output keeps its stream, verbosity and start time in module state,
and BuildParams reads EXTBUILD_* variables from the environment. Both are
reset around every test so results do not depend on test order or on the
developer's shell.
"""

import sys

import pytest

from extbuild import output

EXTBUILD_ENVIRONMENT = ("EXTBUILD_OUTPUT_DIR", "EXTBUILD_OPTIMIZE", "EXTBUILD_ASAN", "EXTBUILD_JOBS")


@pytest.fixture(autouse=True)
def _reset_output_state():
    """Restore the output module defaults after each test."""
    yield
    output._output_stream = sys.stdout
    output._start_time = None
    output.set_verbose(False)


@pytest.fixture(autouse=True)
def _clean_build_environment(monkeypatch):
    for name in EXTBUILD_ENVIRONMENT:
        monkeypatch.delenv(name, raising=False)
