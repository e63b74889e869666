"""Build parameters resolved from the CLI and the environment.

Design:
    BuildParams flows from the CLI to the Orchestrator. Every field can come
    from a command-line option or an environment variable; the command line
    wins. Unset values fall back to the defaults below.

Environment Variables:
    EXTBUILD_OUTPUT_DIR: Output directory (overrides the manifest's)
    EXTBUILD_OPTIMIZE: Compile and link with ``-O`` ("1", "true", "yes", "on")
    EXTBUILD_ASAN: Instrument with the address sanitizer
    EXTBUILD_JOBS: Number of actions to run at once
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from extbuild.errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"", "0", "false", "no", "off"}


@dataclass(frozen=True)
class BuildParams:
    """Per-invocation build switches.

    Attributes:
        output_dir: Output directory override (None = manifest's output_dir)
        optimize: Whether to compile and link with optimization
        sanitize: Whether to build with the address sanitizer
        jobs: Maximum number of actions running at once
        verbose: Whether to print staleness reasons and commands
    """

    output_dir: Optional[Path] = None
    optimize: bool = False
    sanitize: bool = False
    jobs: int = 1
    verbose: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BuildParams":
        """Create BuildParams from ``EXTBUILD_*`` environment variables.

        Raises:
            ConfigurationError: If a variable has an invalid value
        """
        return cls.create(environ=environ)

    @classmethod
    def create(
        cls,
        output_dir: Optional[Path] = None,
        optimize: Optional[bool] = None,
        sanitize: Optional[bool] = None,
        jobs: Optional[int] = None,
        verbose: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BuildParams":
        """Create BuildParams, filling unset values from the environment.

        Raises:
            ConfigurationError: If a value is invalid
        """
        env = os.environ if environ is None else environ

        if output_dir is None and env.get("EXTBUILD_OUTPUT_DIR"):
            output_dir = Path(env["EXTBUILD_OUTPUT_DIR"])
        if optimize is None:
            optimize = _env_flag(env, "EXTBUILD_OPTIMIZE")
        if sanitize is None:
            sanitize = _env_flag(env, "EXTBUILD_ASAN")
        if jobs is None:
            raw_jobs = env.get("EXTBUILD_JOBS", "1")
            try:
                jobs = int(raw_jobs)
            except ValueError:
                raise ConfigurationError(f"EXTBUILD_JOBS must be an integer, got '{raw_jobs}'") from None
        if jobs < 1:
            raise ConfigurationError(f"Number of jobs must be at least 1, got {jobs}")

        return cls(output_dir=output_dir, optimize=optimize, sanitize=sanitize, jobs=jobs, verbose=verbose)


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    value = env.get(name, "").strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean (1/0, true/false, yes/no, on/off), got '{value}'")
