"""Dependency-tracking task graph.

Targets are registered once, validated once (dangling prerequisites and
cycles) before any action runs, and then built on demand: prerequisites
first, in declaration order, then the target itself if the staleness checker
says it is out of date.

Every target carries a completion latch, so a target's action runs at most
once per graph even when several threads build overlapping subgraphs. With
``jobs > 1`` the graph schedules the requested subgraph on a thread pool,
starting a target only after all of its prerequisites have completed.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Iterator, Optional

from extbuild.errors import (
    BuildActionError,
    CyclicDependencyError,
    DanglingPrerequisiteError,
    DuplicateTargetError,
    UnknownTargetError,
)

from .build_state import BuildStateTracker
from .callbacks import BuildCallback, NullCallback
from .models import BuildReport, TargetStatus, TaskNode, normalize_id
from .staleness import StalenessChecker

logger = logging.getLogger(__name__)


class TaskGraph:
    """Registry and executor for build targets.

    Thread-safe: ``build`` may be called from several threads; the built-state
    table is guarded by a lock and each target by its own latch.

    Usage:
        graph = TaskGraph()
        graph.register(TaskNode.file(gen_spec, generator))
        graph.register(TaskNode.file(obj_spec, compiler))
        graph.register(TaskNode.group("all", [obj_spec.output]))
        report = graph.build("all")

    Args:
        callback: Receives target status updates.
        tracker: Optional fingerprint tracker (flag changes make targets stale).
        jobs: Maximum number of actions running at once.
    """

    def __init__(
        self,
        callback: Optional[BuildCallback] = None,
        tracker: Optional[BuildStateTracker] = None,
        jobs: int = 1,
    ) -> None:
        self._nodes: dict[str, TaskNode] = {}
        self._lock = threading.Lock()
        self._latches: dict[str, threading.Event] = {}
        self._failures: dict[str, BaseException] = {}
        self._validated = False
        self._callback: BuildCallback = callback if callback is not None else NullCallback()
        self._tracker = tracker
        self._checker = StalenessChecker(self.find, tracker)
        self._jobs = max(1, jobs)

    def register(self, target: TaskNode) -> TaskNode:
        """Add a target to the graph.

        Args:
            target: The target to register.

        Returns:
            The registered target.

        Raises:
            DuplicateTargetError: If the id (output path) is already claimed.
        """
        with self._lock:
            if target.id in self._nodes:
                raise DuplicateTargetError(target.id)
            self._nodes[target.id] = target
            self._validated = False
        return target

    def find(self, target_id: "str | Path") -> Optional[TaskNode]:
        """Return the registered target for ``target_id``, or None."""
        return self._nodes.get(normalize_id(target_id))

    def get(self, target_id: "str | Path") -> TaskNode:
        """Return the registered target for ``target_id``.

        Raises:
            UnknownTargetError: If no such target is registered.
        """
        node = self.find(target_id)
        if node is None:
            raise UnknownTargetError(normalize_id(target_id))
        return node

    def __contains__(self, target_id: object) -> bool:
        return isinstance(target_id, (str, Path)) and self.find(target_id) is not None

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def targets(self) -> list[TaskNode]:
        """All registered targets in registration order."""
        with self._lock:
            return list(self._nodes.values())

    @property
    def checker(self) -> StalenessChecker:
        """The staleness checker used by this graph."""
        return self._checker

    def output_paths(self) -> list[Path]:
        """Output paths of all registered file targets."""
        return [node.output for node in self.targets if node.output is not None]

    def validate(self) -> None:
        """Validate the whole graph.

        Checks:
        1. Every prerequisite is a registered target or an existing file
        2. No cyclic dependencies exist

        Raises:
            DanglingPrerequisiteError: If a prerequisite cannot be resolved.
            CyclicDependencyError: If the graph contains a cycle.
        """
        with self._lock:
            self._validate_references()
            self._detect_cycles()
            self._validated = True

    def _validate_references(self) -> None:
        for node in self._nodes.values():
            for prereq_id in node.prerequisites:
                if prereq_id not in self._nodes and not Path(prereq_id).exists():
                    raise DanglingPrerequisiteError(node.id, prereq_id)

    def _detect_cycles(self) -> None:
        """Detect cycles using DFS with coloring (white/gray/black)."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color: dict[str, int] = {target_id: WHITE for target_id in self._nodes}

        def dfs(target_id: str, path: list[str]) -> None:
            color[target_id] = GRAY
            path.append(target_id)
            for prereq_id in self._nodes[target_id].prerequisites:
                if prereq_id not in self._nodes:
                    continue
                if color[prereq_id] == GRAY:
                    cycle_start = path.index(prereq_id)
                    raise CyclicDependencyError(path[cycle_start:] + [prereq_id])
                if color[prereq_id] == WHITE:
                    dfs(prereq_id, path)
            path.pop()
            color[target_id] = BLACK

        for target_id in self._nodes:
            if color[target_id] == WHITE:
                dfs(target_id, [])

    def build(self, target_id: "str | Path") -> BuildReport:
        """Bring ``target_id`` and everything it depends on up to date.

        Args:
            target_id: Output path or phony name of the target.

        Returns:
            BuildReport listing the actions that ran and the targets found fresh.

        Raises:
            UnknownTargetError: If the target is not registered.
            ConfigurationError: If validation fails (before any action runs).
            BuildActionError: If an action fails; no further targets are started.
        """
        node = self.get(target_id)
        with self._lock:
            needs_validation = not self._validated
        if needs_validation:
            self.validate()

        start_time = time.monotonic()
        report = BuildReport()
        if self._jobs == 1:
            self._build_depth_first(node, report)
        else:
            self._build_parallel(node, report)
        report.elapsed = time.monotonic() - start_time
        return report

    def _build_depth_first(self, node: TaskNode, report: BuildReport) -> None:
        if node.built:
            return
        for prereq_id in node.prerequisites:
            prereq = self._nodes.get(prereq_id)
            if prereq is not None:
                self._build_depth_first(prereq, report)
        self._execute_once(node, report)

    def _build_parallel(self, root: TaskNode, report: BuildReport) -> None:
        order = [n for n in self._postorder(root) if not n.built]
        subgraph = {n.id for n in order}
        pending = set(subgraph)
        done: set[str] = set()
        running: dict[Future[Any], TaskNode] = {}
        first_error: Optional[BaseException] = None

        with ThreadPoolExecutor(max_workers=self._jobs, thread_name_prefix="extbuild") as pool:
            while pending or running:
                # After a failure nothing new starts; running actions finish
                if first_error is None:
                    for node in order:
                        if node.id not in pending:
                            continue
                        if all(p in done for p in node.prerequisites if p in subgraph):
                            pending.discard(node.id)
                            running[pool.submit(self._execute_once, node, report)] = node
                if not running:
                    break
                finished, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in finished:
                    node = running.pop(future)
                    try:
                        future.result()
                    except BaseException as e:
                        if first_error is None:
                            first_error = e
                    else:
                        done.add(node.id)

        if first_error is not None:
            raise first_error

    def _postorder(self, root: TaskNode) -> Iterator[TaskNode]:
        """Yield ``root`` and its registered prerequisites, prerequisites first."""
        visited: set[str] = set()

        def visit(node: TaskNode) -> Iterator[TaskNode]:
            visited.add(node.id)
            for prereq_id in node.prerequisites:
                prereq = self._nodes.get(prereq_id)
                if prereq is not None and prereq.id not in visited:
                    yield from visit(prereq)
            yield node

        yield from visit(root)

    def _execute_once(self, node: TaskNode, report: BuildReport) -> None:
        """Evaluate ``node`` unless another caller already did or is doing so."""
        with self._lock:
            if node.built:
                return
            failure = self._failures.get(node.id)
            if failure is not None:
                raise failure
            latch = self._latches.get(node.id)
            owner = latch is None
            if latch is None:
                latch = self._latches[node.id] = threading.Event()

        if not owner:
            latch.wait()
            with self._lock:
                failure = self._failures.get(node.id)
            if failure is not None:
                raise failure
            return

        try:
            self._evaluate(node, report)
        except BaseException as e:
            with self._lock:
                self._failures[node.id] = e
            raise
        finally:
            latch.set()

    def _evaluate(self, node: TaskNode, report: BuildReport) -> None:
        reason = self._checker.explain(node)

        if reason is None:
            self._mark_built(node, TargetStatus.UP_TO_DATE)
            with self._lock:
                report.up_to_date.append(node.id)
            self._callback.on_target(node.id, node.kind, TargetStatus.UP_TO_DATE, "")
            return

        if node.action is None:
            self._mark_built(node, TargetStatus.BUILT)
            return

        node.status = TargetStatus.RUNNING
        self._callback.on_target(node.id, node.kind, TargetStatus.RUNNING, reason)
        logger.debug(f"Running {node.kind} action for {node.id} ({reason})")

        try:
            node.action.execute(node.spec)
        except BuildActionError as e:
            self._fail(node, e)
            raise
        except Exception as e:
            error = BuildActionError(node.id, e)
            self._fail(node, error)
            raise error from e

        self._mark_built(node, TargetStatus.BUILT)
        with self._lock:
            report.executed.append(node.id)
        self._callback.on_target(node.id, node.kind, TargetStatus.BUILT, "")

    def _mark_built(self, node: TaskNode, status: TargetStatus) -> None:
        if self._tracker is not None and node.spec is not None:
            self._tracker.record(node.id, node.spec.fingerprint())
        with self._lock:
            node.status = status
            node.built = True

    def _fail(self, node: TaskNode, error: BuildActionError) -> None:
        node.status = TargetStatus.FAILED
        if self._tracker is not None:
            self._tracker.forget(node.id)
        if node.action is not None and node.spec is not None and node.spec.output.exists():
            logger.debug(f"Discarding output of failed target: {node.spec.output}")
            node.action.discard_output(node.spec)
        self._callback.on_target(node.id, node.kind, TargetStatus.FAILED, str(error.cause))

    def to_dict(self) -> dict[str, Any]:
        """Serialize graph state to dictionary."""
        with self._lock:
            return {"targets": {target_id: node.to_dict() for target_id, node in self._nodes.items()}}
