"""Subprocess utilities for invoking the native toolchain.

Every compiler, archiver and linker invocation goes through ``safe_run`` so
that child processes never open a console window on Windows and never inherit
the parent's stdin. The ``extbuild_lint`` subprocess checker enforces this.
"""

import shlex
import subprocess
import sys
from typing import Any, Sequence


def get_subprocess_creation_flags() -> int:
    """Get platform-specific subprocess creation flags.

    Returns:
        - Windows: subprocess.CREATE_NO_WINDOW (prevents console window)
        - Other platforms: 0 (no special flags)
    """
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def safe_run(cmd: Sequence[str], **kwargs: Any) -> subprocess.CompletedProcess:
    """Execute subprocess.run with platform-specific flags.

    Automatically applies CREATE_NO_WINDOW on Windows and redirects stdin to
    DEVNULL unless the caller passes its own ``stdin``. An explicit
    ``creationflags`` argument is OR'd with the platform defaults.

    Args:
        cmd: Command and arguments (same as subprocess.run)
        **kwargs: Additional arguments passed to subprocess.run

    Returns:
        CompletedProcess result from subprocess.run
    """
    default_flags = get_subprocess_creation_flags()

    if "creationflags" in kwargs:
        kwargs["creationflags"] = kwargs["creationflags"] | default_flags
    elif default_flags:
        kwargs["creationflags"] = default_flags

    if "stdin" not in kwargs:
        kwargs["stdin"] = subprocess.DEVNULL

    return subprocess.run(list(cmd), **kwargs)


def format_command(cmd: Sequence[str]) -> str:
    """Render a command line for logs, quoting arguments that need it."""
    return " ".join(shlex.quote(str(arg)) for arg in cmd)


def combined_output(result: subprocess.CompletedProcess) -> str:
    """Join captured stderr and stdout into one diagnostic string."""
    parts = [part.strip() for part in (result.stderr, result.stdout) if part and part.strip()]
    return "\n".join(parts)
