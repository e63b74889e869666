"""Exception hierarchy for extbuild.

Error classes are grouped by when they can occur:

- ConfigurationError: problems with the manifest or task graph itself
  (duplicate targets, dangling prerequisites, cycles). Detected before
  any action runs and never retried.
- PreflightError: a required toolchain binary is missing. Reported before
  any target is considered.
- BuildActionError: an action (generate, compile, archive, link) failed.
  Carries the failing target id and the underlying cause, and aborts the
  remaining graph traversal.
- CleanError: an output could not be removed during clean.
"""

from typing import Optional, Sequence


class ExtbuildError(Exception):
    """Base class for all extbuild errors."""

    pass


class ConfigurationError(ExtbuildError):
    """Raised when the manifest or task graph is misconfigured."""

    pass


class ManifestError(ConfigurationError):
    """Raised when a build manifest cannot be loaded or is malformed."""

    pass


class DuplicateTargetError(ConfigurationError):
    """Raised when two targets claim the same id or output path."""

    def __init__(self, target_id: str):
        self.target_id = target_id
        super().__init__(f"Duplicate target: {target_id}")


class UnknownTargetError(ConfigurationError):
    """Raised when a build is requested for a target that was never registered."""

    def __init__(self, target_id: str):
        self.target_id = target_id
        super().__init__(f"Unknown target: {target_id}")


class DanglingPrerequisiteError(ConfigurationError):
    """Raised when a prerequisite is neither a registered target nor an existing file."""

    def __init__(self, target_id: str, prerequisite: str):
        self.target_id = target_id
        self.prerequisite = prerequisite
        super().__init__(f"Target '{target_id}' depends on '{prerequisite}', which is not a known target and does not exist on disk")


class CyclicDependencyError(ConfigurationError):
    """Raised when the prerequisite graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Cyclic dependency detected: {' -> '.join(self.cycle)}")


class PreflightError(ExtbuildError):
    """Raised when a required toolchain binary cannot be located."""

    def __init__(self, binary: str, hint: str = ""):
        self.binary = binary
        message = f"Could not find required binary '{binary}'"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class BuildActionError(ExtbuildError):
    """Raised when the action producing a target fails.

    Attributes:
        target: Id of the target whose action failed.
        cause: Underlying exception or diagnostic text.
    """

    def __init__(self, target: str, cause: object):
        self.target = target
        self.cause = cause
        super().__init__(f"Failed to build {target}: {cause}")


class TemplateRenderError(BuildActionError):
    """Raised when a template cannot be rendered into a generated source."""

    pass


class _ToolFailure(BuildActionError):
    """Common base for failures of an external tool invocation."""

    tool_name = "tool"

    def __init__(self, target: str, returncode: int, diagnostics: str, command: Optional[Sequence[str]] = None):
        self.returncode = returncode
        self.diagnostics = diagnostics
        self.command = list(command) if command else []
        super().__init__(target, f"{self.tool_name} exited with status {returncode}\n{diagnostics}".rstrip())


class CompilationError(_ToolFailure):
    """Raised when the compiler exits with a non-zero status."""

    tool_name = "compiler"


class ArchiveError(_ToolFailure):
    """Raised when the archiver exits with a non-zero status."""

    tool_name = "archiver"


class LinkError(_ToolFailure):
    """Raised when the linker exits with a non-zero status."""

    tool_name = "linker"


class CleanError(ExtbuildError):
    """Raised when an output path cannot be removed."""

    def __init__(self, path: object, cause: object):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to remove {path}: {cause}")
