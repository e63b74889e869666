"""Dependency-tracking task graph.

Public API:
    TaskGraph: Registers targets, validates the graph and builds targets.
    TaskNode: A file target or a phony target.
    ActionSpec / Action: What produces a file target and the strategy that does it.
    CommandFlags: What an ActionSpec needs from a flag set (rendered by the action).
    StalenessChecker: Decides whether a target must be rebuilt.
    BuildStateTracker: Remembers the action fingerprint each target was built with.
"""

from .actions import Action, ActionKind, ActionSpec, CommandFlags
from .build_state import BuildStateTracker
from .callbacks import BuildCallback, NullCallback
from .models import BuildReport, TargetStatus, TaskNode, normalize_id
from .staleness import StalenessChecker
from .task_graph import TaskGraph

__all__ = [
    "Action",
    "ActionKind",
    "ActionSpec",
    "BuildCallback",
    "BuildReport",
    "BuildStateTracker",
    "CommandFlags",
    "NullCallback",
    "StalenessChecker",
    "TargetStatus",
    "TaskGraph",
    "TaskNode",
    "normalize_id",
]
