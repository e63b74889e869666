"""Rich console progress display for task graph builds.

Prints one line per target as the graph evaluates it and a summary table at
the end:

    [generate] src/module/Config/AutoGeneratedStruct.h
    [compile]  buildout/Config.o
    [link]     buildout/mod_example.so  ✓ 0.4s

Thread-safe: graph worker threads call on_target() concurrently when the
build runs with more than one job.
"""

import threading
import time
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from extbuild.graph.models import TargetStatus

_KIND_STYLES = {
    "generate": "magenta",
    "compile": "blue",
    "archive": "yellow",
    "link": "bold cyan",
}


class _TargetDisplayState:
    """Internal state for one target's display line."""

    __slots__ = ("target_id", "kind", "status", "detail", "start_time", "elapsed")

    def __init__(self, target_id: str, kind: str) -> None:
        self.target_id = target_id
        self.kind = kind
        self.status = TargetStatus.PENDING
        self.detail: str = ""
        self.start_time: float | None = None
        self.elapsed: float = 0.0


class BuildProgressDisplay:
    """Console implementation of the BuildCallback protocol.

    Args:
        console: Rich Console to print to. If None, creates a new one.
        verbose: Also print up-to-date targets and staleness reasons.
    """

    def __init__(self, console: Console | None = None, verbose: bool = False) -> None:
        self._console = console if console is not None else Console()
        self._verbose = verbose
        self._states: dict[str, _TargetDisplayState] = {}
        self._order: list[str] = []
        self._lock = threading.Lock()

    def on_target(self, target_id: str, kind: str, status: TargetStatus, detail: str) -> None:
        """Record a status change and print the matching line. Thread-safe."""
        with self._lock:
            state = self._states.get(target_id)
            if state is None:
                state = _TargetDisplayState(target_id, kind)
                self._states[target_id] = state
                self._order.append(target_id)

            if status == TargetStatus.RUNNING:
                state.start_time = time.monotonic()
            elif state.start_time is not None:
                state.elapsed = time.monotonic() - state.start_time
            state.status = status
            state.detail = detail

            line = self._format_line(state)
            if line is not None:
                self._console.print(line, highlight=False)

    def _format_line(self, state: _TargetDisplayState) -> Text | None:
        kind_label = Text(f"[{state.kind}]".ljust(11), style=_KIND_STYLES.get(state.kind, "dim"))

        if state.status == TargetStatus.RUNNING:
            line = Text.assemble(kind_label, state.target_id)
            if self._verbose and state.detail:
                line.append(f"  ({state.detail})", style="dim")
            return line

        if state.status == TargetStatus.UP_TO_DATE:
            if not self._verbose:
                return None
            return Text.assemble(kind_label, Text(f"{state.target_id}  up to date", style="dim"))

        if state.status == TargetStatus.FAILED:
            return Text.assemble(kind_label, Text(f"{state.target_id}  ✗ {state.detail}", style="red"))

        if state.status == TargetStatus.BUILT and self._verbose:
            return Text.assemble(kind_label, Text(f"{state.target_id}  ✓ {state.elapsed:.1f}s", style="green"))

        return None

    def render_summary(self) -> Table:
        """Build a table with per-kind counts of built, fresh and failed targets."""
        table = Table(show_edge=False, box=None, padding=(0, 1))
        table.add_column("Kind", style="bold", no_wrap=True)
        table.add_column("Built", justify="right")
        table.add_column("Up to date", justify="right")
        table.add_column("Failed", justify="right")

        counts: dict[str, dict[TargetStatus, int]] = {}
        with self._lock:
            for target_id in self._order:
                state = self._states[target_id]
                per_kind = counts.setdefault(state.kind, {})
                per_kind[state.status] = per_kind.get(state.status, 0) + 1

        for kind, per_kind in counts.items():
            table.add_row(
                Text(kind, style=_KIND_STYLES.get(kind, "dim")),
                str(per_kind.get(TargetStatus.BUILT, 0)),
                str(per_kind.get(TargetStatus.UP_TO_DATE, 0)),
                str(per_kind.get(TargetStatus.FAILED, 0)),
            )
        return table

    def print_summary(self) -> None:
        """Print the summary table."""
        self._console.print(self.render_summary())

    def get_snapshot(self) -> list[dict[str, Any]]:
        """Get a snapshot of current display states for testing."""
        with self._lock:
            return [
                {
                    "target_id": state.target_id,
                    "kind": state.kind,
                    "status": state.status,
                    "detail": state.detail,
                    "elapsed": state.elapsed,
                }
                for state in (self._states[target_id] for target_id in self._order)
            ]
