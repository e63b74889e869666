"""Toolchain lookup for the host platform.

PlatformInfo answers two kinds of questions, both without side effects:

- Where is a required binary? (compiler, archiver, anything the manifest
  lists as required). A missing binary is a PreflightError.
- Which flag strings does the platform need? (module compile flags, module
  link flags, portability link flags).

Binary Resolution:
    Commands come from the ``CXX`` / ``AR`` environment variables when set,
    otherwise ``c++`` / ``ar``. A command may carry a launcher, e.g.
    ``CXX="ccache g++"``; only the first word is resolved, the rest is passed
    through. Names containing a path separator are checked directly, bare
    names are searched on PATH.
"""

import os
import shlex
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from extbuild.errors import PreflightError
from extbuild.graph.actions import ActionKind

DEFAULT_CXX = "c++"
DEFAULT_AR = "ar"


@dataclass(frozen=True)
class PlatformInfo:
    """Toolchain commands and platform flag sets.

    Attributes:
        cxx: C++ compiler command (also used as the link driver)
        ar: Archiver command
        module_cxxflags: Flags every extension-module object is compiled with
        module_ldflags: Flags the extension module is linked with
        portability_ldflags: Extra link flags needed on this platform
        search_path: PATH used to resolve bare command names (None = os PATH)
    """

    cxx: tuple[str, ...] = (DEFAULT_CXX,)
    ar: tuple[str, ...] = (DEFAULT_AR,)
    module_cxxflags: tuple[str, ...] = field(default_factory=tuple)
    module_ldflags: tuple[str, ...] = field(default_factory=tuple)
    portability_ldflags: tuple[str, ...] = field(default_factory=tuple)
    search_path: Optional[str] = None

    @classmethod
    def detect(cls, environ: Optional[Mapping[str, str]] = None, platform: Optional[str] = None) -> "PlatformInfo":
        """Build a PlatformInfo for the running host.

        Args:
            environ: Environment to read ``CXX``, ``AR``, ``CXXFLAGS`` and
                ``LDFLAGS`` from (defaults to os.environ)
            platform: Platform name as in sys.platform (defaults to the host)

        Returns:
            PlatformInfo with host defaults and environment overrides applied
        """
        env = os.environ if environ is None else environ
        platform = sys.platform if platform is None else platform

        module_cxxflags = ["-fPIC", "-fvisibility=hidden"]
        module_ldflags: List[str] = []
        portability_ldflags: List[str] = []

        if platform == "darwin":
            # Extension modules resolve host symbols at load time
            module_ldflags.extend(["-undefined", "dynamic_lookup"])
        elif platform.startswith("linux"):
            portability_ldflags.extend(["-ldl", "-lpthread"])
        elif platform.startswith(("freebsd", "openbsd", "netbsd")):
            portability_ldflags.append("-lpthread")

        module_cxxflags.extend(shlex.split(env.get("CXXFLAGS", "")))
        module_ldflags.extend(shlex.split(env.get("LDFLAGS", "")))

        return cls(
            cxx=tuple(shlex.split(env.get("CXX", "")) or [DEFAULT_CXX]),
            ar=tuple(shlex.split(env.get("AR", "")) or [DEFAULT_AR]),
            module_cxxflags=tuple(module_cxxflags),
            module_ldflags=tuple(module_ldflags),
            portability_ldflags=tuple(portability_ldflags),
            search_path=env.get("PATH"),
        )

    def find_binary(self, name: str) -> Optional[Path]:
        """Find a binary by name or path.

        Args:
            name: Bare command name (searched on PATH) or a path

        Returns:
            Path to the binary, or None if not found
        """
        if os.sep in name or (os.altsep and os.altsep in name):
            path = Path(name)
            return path if path.is_file() and os.access(path, os.X_OK) else None
        found = shutil.which(name, path=self.search_path)
        return Path(found) if found else None

    def require_binary(self, name: str, hint: str = "") -> Path:
        """Find a binary or fail.

        Raises:
            PreflightError: If the binary cannot be located
        """
        path = self.find_binary(name)
        if path is None:
            raise PreflightError(name, hint)
        return path

    def verify_required_binaries(self, required_binaries: List[str]) -> tuple[bool, List[str]]:
        """Verify that all required binaries exist.

        Args:
            required_binaries: Binary names or paths

        Returns:
            Tuple of (all_found, missing_binaries)
        """
        missing = [name for name in required_binaries if self.find_binary(name) is None]
        return len(missing) == 0, missing

    def compiler_command(self) -> List[str]:
        """Resolved compiler command (launcher words included).

        Raises:
            PreflightError: If the compiler cannot be located
        """
        resolved = self.require_binary(self.cxx[0], "Install a C++ compiler or set CXX")
        return [str(resolved), *self.cxx[1:]]

    def archiver_command(self) -> List[str]:
        """Resolved archiver command.

        Raises:
            PreflightError: If the archiver cannot be located
        """
        resolved = self.require_binary(self.ar[0], "Install binutils or set AR")
        return [str(resolved), *self.ar[1:]]

    def shared_library_flags(self) -> List[str]:
        """Flags that make the link driver produce a shared library."""
        return ["-shared"]

    def command_signature(self, kind: ActionKind) -> tuple[str, ...]:
        """Tool command and platform flags that end up in a ``kind`` command line.

        Unresolved, so it can be computed before preflight. Part of each
        ActionSpec fingerprint: changing ``CXX``, ``AR``, ``CXXFLAGS`` or
        ``LDFLAGS`` makes the affected targets stale.
        """
        if kind == ActionKind.COMPILE:
            return (*self.cxx, *self.module_cxxflags)
        if kind == ActionKind.ARCHIVE:
            return self.ar
        if kind == ActionKind.LINK:
            return (*self.cxx, *self.shared_library_flags(), *self.module_ldflags, *self.portability_ldflags)
        return ()
