"""Compiler and linker flag sets.

A FlagSet is the immutable, per-unit description of how to invoke the
toolchain: include paths, extra compile/link flags, and the two global
switches the build exposes (optimization and the address sanitizer).

Design:
    The switches own the flags they control. When optimization is on, any
    ``-O`` flags coming from the platform or manifest are stripped and a
    single ``-O`` is appended, so toggling the switch always yields the same
    command line regardless of where the other flags came from.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

OPTIMIZE_FLAG = "-O"
SANITIZE_COMPILE_FLAGS = ("-fsanitize=address", "-fno-omit-frame-pointer")
SANITIZE_LINK_FLAGS = ("-fsanitize=address", "-shared-libasan")

# Flag prefixes owned by the optimize switch
OPTIMIZE_CONTROLLED = ("-O",)


@dataclass(frozen=True)
class FlagSet:
    """Flags for one compile or link action.

    Attributes:
        include_paths: Directories passed as ``-I`` when compiling
        cxxflags: Extra compile flags, in order
        ldflags: Extra link flags, in order
        optimize: Whether to compile and link with ``-O``
        sanitize: Whether to instrument with the address sanitizer
    """

    include_paths: tuple[str, ...] = field(default_factory=tuple)
    cxxflags: tuple[str, ...] = field(default_factory=tuple)
    ldflags: tuple[str, ...] = field(default_factory=tuple)
    optimize: bool = False
    sanitize: bool = False

    def compile_args(self) -> List[str]:
        """Render the compile arguments (everything except source and output).

        Returns:
            Flags followed by switch flags and ``-I`` include arguments
        """
        args = list(self.cxxflags)
        if self.optimize:
            args = filter_controlled_flags(args, OPTIMIZE_CONTROLLED)
            args.append(OPTIMIZE_FLAG)
        if self.sanitize:
            args.extend(SANITIZE_COMPILE_FLAGS)
        args.extend(f"-I{path}" for path in self.include_paths)
        return args

    def platform_args(self, platform_flags: Iterable[str]) -> List[str]:
        """Filter platform flags (``CXXFLAGS``, ``LDFLAGS``, module flags) through the switches."""
        args = list(platform_flags)
        if self.optimize:
            args = filter_controlled_flags(args, OPTIMIZE_CONTROLLED)
        return args

    def link_args(self) -> List[str]:
        """Render the link arguments (everything except inputs and output)."""
        args = list(self.ldflags)
        if self.optimize:
            args = filter_controlled_flags(args, OPTIMIZE_CONTROLLED)
            args.append(OPTIMIZE_FLAG)
        if self.sanitize:
            args.extend(SANITIZE_LINK_FLAGS)
        return args

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "include_paths": list(self.include_paths),
            "cxxflags": list(self.cxxflags),
            "ldflags": list(self.ldflags),
            "optimize": self.optimize,
            "sanitize": self.sanitize,
        }


def filter_controlled_flags(flags: List[str], controlled_patterns: Iterable[str]) -> List[str]:
    """Remove flags that start with any of the controlled prefixes.

    Args:
        flags: Flags to filter
        controlled_patterns: Prefixes owned by a switch

    Returns:
        Filtered list of flags
    """
    patterns = tuple(controlled_patterns)
    return [f for f in flags if not f.startswith(patterns)]
