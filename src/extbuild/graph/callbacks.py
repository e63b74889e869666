"""Progress callback protocol for task graph execution.

The graph reports every target it evaluates through this interface. The CLI
plugs in a Rich console display; library callers and tests use NullCallback
or their own recorder.
"""

from typing import Protocol, runtime_checkable

from .models import TargetStatus


@runtime_checkable
class BuildCallback(Protocol):
    """Protocol for receiving target status updates.

    May be called from worker threads when the graph runs with more than
    one job; implementations must be thread-safe in that case.
    """

    def on_target(self, target_id: str, kind: str, status: TargetStatus, detail: str) -> None:
        """Called when a target changes status.

        Args:
            target_id: Id of the target (output path or phony name).
            kind: Action kind label (e.g. "compile", "link", "phony").
            status: New status (RUNNING, BUILT, UP_TO_DATE or FAILED).
            detail: Human-readable detail (staleness reason or error text).
        """
        ...


class NullCallback:
    """No-op callback implementation for tests and non-interactive use."""

    def on_target(self, target_id: str, kind: str, status: TargetStatus, detail: str) -> None:
        """Discard status update."""
        pass
