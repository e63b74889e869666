"""Shared fixtures for toolchain-facing tests.

The toolchain binaries are empty executable files so preflight lookups pass;
the process boundary (safe_run) is replaced by FakeToolchain, which records
every command and writes the output file the command names.
"""

import subprocess
from pathlib import Path

import pytest

from extbuild.build.platform_info import PlatformInfo


class FakeToolchain:
    """Stand-in for safe_run in the compiler, archiver and linker modules."""

    def __init__(self) -> None:
        self.commands: list[list[str]] = []
        self.fail_for: dict[str, str] = {}
        self.warnings = ""

    @staticmethod
    def output_of(cmd: list[str]) -> Path:
        if "-o" in cmd:
            return Path(cmd[cmd.index("-o") + 1])
        return Path(cmd[cmd.index("rcs") + 1])

    def __call__(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        cmd = list(cmd)
        self.commands.append(cmd)
        output = self.output_of(cmd)
        if output.name in self.fail_for:
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr=self.fail_for[output.name])
        output.write_text(" ".join(cmd))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr=self.warnings)

    def outputs(self) -> list[str]:
        """Names of the outputs of all recorded commands, in call order."""
        return [self.output_of(cmd).name for cmd in self.commands]


def _make_executable(path: Path) -> Path:
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def toolchain(tmp_path: Path) -> PlatformInfo:
    """PlatformInfo whose compiler and archiver exist on disk."""
    bin_dir = tmp_path / "toolchain-bin"
    bin_dir.mkdir()
    cxx = _make_executable(bin_dir / "c++")
    ar = _make_executable(bin_dir / "ar")
    _make_executable(bin_dir / "apachectl")
    return PlatformInfo(
        cxx=(str(cxx),),
        ar=(str(ar),),
        module_cxxflags=("-fPIC", "-fvisibility=hidden"),
        module_ldflags=("-Wl,--as-needed",),
        portability_ldflags=("-ldl", "-lpthread"),
        search_path=str(bin_dir),
    )


@pytest.fixture
def fake_tools(monkeypatch) -> FakeToolchain:
    """Route every toolchain invocation to a FakeToolchain."""
    fake = FakeToolchain()
    monkeypatch.setattr("extbuild.build.compiler.safe_run", fake)
    monkeypatch.setattr("extbuild.build.archiver.safe_run", fake)
    monkeypatch.setattr("extbuild.build.linker.safe_run", fake)
    return fake
