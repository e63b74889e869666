"""Tests for the rich console build progress display."""

import io
import threading

from rich.console import Console

from extbuild.graph.callbacks import BuildCallback
from extbuild.graph.models import TargetStatus
from extbuild.progress_display import BuildProgressDisplay


def _display(verbose: bool = False) -> tuple[BuildProgressDisplay, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None)
    return BuildProgressDisplay(console=console, verbose=verbose), buffer


class TestBuildProgressDisplay:
    def test_satisfies_callback_protocol(self):
        display, _ = _display()
        assert isinstance(display, BuildCallback)

    def test_running_targets_are_printed(self):
        display, buffer = _display()
        display.on_target("out/gen.o", "compile", TargetStatus.RUNNING, "out/gen.o does not exist")

        text = buffer.getvalue()
        assert "[compile]" in text
        assert "out/gen.o" in text
        assert "does not exist" not in text

    def test_verbose_shows_reason_and_result(self):
        display, buffer = _display(verbose=True)
        display.on_target("out/gen.o", "compile", TargetStatus.RUNNING, "Gen.cpp is newer")
        display.on_target("out/gen.o", "compile", TargetStatus.BUILT, "")

        text = buffer.getvalue()
        assert "(Gen.cpp is newer)" in text
        assert "✓" in text

    def test_up_to_date_hidden_unless_verbose(self):
        quiet, quiet_buffer = _display()
        quiet.on_target("out/lib.so", "link", TargetStatus.UP_TO_DATE, "")
        assert quiet_buffer.getvalue() == ""

        loud, loud_buffer = _display(verbose=True)
        loud.on_target("out/lib.so", "link", TargetStatus.UP_TO_DATE, "")
        assert "up to date" in loud_buffer.getvalue()

    def test_failures_always_printed(self):
        display, buffer = _display()
        display.on_target("out/gen.o", "compile", TargetStatus.RUNNING, "")
        display.on_target("out/gen.o", "compile", TargetStatus.FAILED, "exit 1")

        assert "✗ exit 1" in buffer.getvalue()

    def test_snapshot_tracks_latest_status_in_first_seen_order(self):
        display, _ = _display()
        display.on_target("Gen.cpp", "generate", TargetStatus.RUNNING, "")
        display.on_target("out/gen.o", "compile", TargetStatus.RUNNING, "")
        display.on_target("Gen.cpp", "generate", TargetStatus.BUILT, "")

        snapshot = display.get_snapshot()
        assert [s["target_id"] for s in snapshot] == ["Gen.cpp", "out/gen.o"]
        assert snapshot[0]["status"] == TargetStatus.BUILT
        assert snapshot[1]["status"] == TargetStatus.RUNNING

    def test_summary_counts_per_kind(self):
        display, buffer = _display()
        display.on_target("a.o", "compile", TargetStatus.BUILT, "")
        display.on_target("b.o", "compile", TargetStatus.UP_TO_DATE, "")
        display.on_target("c.o", "compile", TargetStatus.UP_TO_DATE, "")
        display.on_target("lib.so", "link", TargetStatus.FAILED, "boom")

        display.print_summary()

        rows = {line.split()[0]: line.split()[1:] for line in buffer.getvalue().splitlines() if line.split() and line.split()[0] in ("compile", "link")}
        assert rows["compile"] == ["1", "2", "0"]
        assert rows["link"] == ["0", "0", "1"]

    def test_concurrent_updates(self):
        display, _ = _display()

        def worker(index: int) -> None:
            target = f"obj{index}.o"
            display.on_target(target, "compile", TargetStatus.RUNNING, "")
            display.on_target(target, "compile", TargetStatus.BUILT, "")

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = display.get_snapshot()
        assert len(snapshot) == 16
        assert all(s["status"] == TargetStatus.BUILT for s in snapshot)
