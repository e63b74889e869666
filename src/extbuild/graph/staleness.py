"""Staleness checking for task graph targets.

A file target is stale when:
1. Its output file does not exist
2. Its recorded action fingerprint differs from the current one (only when
   a BuildStateTracker is attached)
3. Any prerequisite target is itself stale
4. Any prerequisite's modification time is strictly newer than the output's

Phony targets always need evaluation. As prerequisites they are transparent:
they are never stale by themselves and contribute no timestamp, but the file
targets they group are checked as if they were direct prerequisites.
"""

import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

from extbuild.errors import DanglingPrerequisiteError

from .build_state import BuildStateTracker
from .models import TaskNode

logger = logging.getLogger(__name__)

TargetResolver = Callable[[str], Optional[TaskNode]]


class StalenessChecker:
    """Decides whether a target must be (re)built.

    Args:
        resolve: Returns the registered TaskNode for an id, or None when the
            id is a plain file on disk.
        tracker: Optional fingerprint tracker; when given, flag changes make
            targets stale.
    """

    def __init__(self, resolve: TargetResolver, tracker: Optional[BuildStateTracker] = None) -> None:
        self._resolve = resolve
        self._tracker = tracker

    def is_stale(self, target: TaskNode) -> bool:
        """Return True if ``target`` must be rebuilt.

        Raises:
            DanglingPrerequisiteError: If a prerequisite is neither a
                registered target nor an existing file.
        """
        return self.explain(target) is not None

    def explain(self, target: TaskNode) -> Optional[str]:
        """Return why ``target`` is stale, or None if it is up to date.

        Raises:
            DanglingPrerequisiteError: If a prerequisite is neither a
                registered target nor an existing file.
        """
        reason = self._explain(target, {})
        if reason is not None:
            logger.debug(f"{target.id} is stale: {reason}")
        return reason

    def _explain(self, node: TaskNode, memo: dict[str, Optional[str]]) -> Optional[str]:
        if node.id in memo:
            return memo[node.id]
        if node.phony:
            reason: Optional[str] = "phony target"
        else:
            reason = self._file_reason(node, memo)
        memo[node.id] = reason
        return reason

    def _file_reason(self, node: TaskNode, memo: dict[str, Optional[str]]) -> Optional[str]:
        output = Path(node.id)
        try:
            output_mtime = output.stat().st_mtime_ns
        except FileNotFoundError:
            return f"{output} does not exist"

        if self._tracker is not None and node.spec is not None:
            if self._tracker.has_changed(node.id, node.spec.fingerprint()):
                return "action flags changed since last build"

        for prereq_id, prereq in self._file_prerequisites(node):
            if prereq is not None and not prereq.built and self._explain(prereq, memo) is not None:
                return f"prerequisite {prereq_id} is stale"

            try:
                prereq_mtime = Path(prereq_id).stat().st_mtime_ns
            except FileNotFoundError:
                if prereq is None:
                    raise DanglingPrerequisiteError(node.id, prereq_id)
                return f"prerequisite {prereq_id} does not exist"

            if prereq_mtime > output_mtime:
                return f"prerequisite {prereq_id} is newer"

        return None

    def _file_prerequisites(self, node: TaskNode) -> Iterator[tuple[str, Optional[TaskNode]]]:
        """Yield (id, node) for every file prerequisite, looking through phony groups."""
        seen: set[str] = set()
        pending = list(node.prerequisites)
        while pending:
            prereq_id = pending.pop(0)
            if prereq_id in seen:
                continue
            seen.add(prereq_id)
            prereq = self._resolve(prereq_id)
            if prereq is not None and prereq.phony:
                pending = list(prereq.prerequisites) + pending
                continue
            yield prereq_id, prereq
