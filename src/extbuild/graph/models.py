"""Data models for the task graph.

- TargetStatus: Outcome of evaluating one target during a run
- TaskNode: A file target or a phony target plus its prerequisites
- BuildReport: What a build call did
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .actions import Action, ActionKind, ActionSpec


class TargetStatus(Enum):
    """Outcome of evaluating a target."""

    PENDING = "pending"
    RUNNING = "running"
    BUILT = "built"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"


def normalize_id(target: "str | Path") -> str:
    """Normalize a target id or path so equal paths compare equal.

    ``build/./gen.o`` and ``build/gen.o`` name the same target; symbolic
    names pass through unchanged.
    """
    return str(Path(target))


@dataclass
class TaskNode:
    """A named build unit.

    File targets have an ``output`` and an ``action``; phony targets have
    neither output nor (usually) an action and exist to group other targets.

    Attributes:
        id: Output path for file targets, symbolic name for phony targets
        prerequisites: Ids of targets or files this target depends on, in order
        action: Strategy that produces the output (None for grouping targets)
        spec: Description of the output handed to ``action``
        phony: True for targets without an output file
        built: Set once the target has been brought up to date in this run
        status: Outcome of the last evaluation
    """

    id: str
    prerequisites: list[str] = field(default_factory=list)
    action: Optional[Action] = None
    spec: Optional[ActionSpec] = None
    phony: bool = False
    built: bool = False
    status: TargetStatus = TargetStatus.PENDING

    @classmethod
    def file(cls, spec: ActionSpec, action: Action, prerequisites: Optional[list["str | Path"]] = None) -> "TaskNode":
        """Create a file target producing ``spec.output``.

        Prerequisites default to the spec's sources (and configuration source).
        """
        if prerequisites is None:
            prerequisites = list(spec.sources)
            if spec.config_source is not None:
                prerequisites.append(spec.config_source)
        return cls(
            id=normalize_id(spec.output),
            prerequisites=[normalize_id(p) for p in prerequisites],
            action=action,
            spec=spec,
        )

    @classmethod
    def group(cls, name: str, prerequisites: list["str | Path"], action: Optional[Action] = None) -> "TaskNode":
        """Create a phony target named ``name``."""
        return cls(id=name, prerequisites=[normalize_id(p) for p in prerequisites], action=action, phony=True)

    @property
    def output(self) -> Optional[Path]:
        """Output path for file targets, None for phony targets."""
        if self.phony:
            return None
        return Path(self.id)

    @property
    def kind(self) -> str:
        """Label used in progress output."""
        if self.spec is not None:
            return self.spec.kind.value
        if self.action is not None and hasattr(self.action, "kind"):
            kind = self.action.kind
            return kind.value if isinstance(kind, ActionKind) else str(kind)
        return "phony"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "prerequisites": list(self.prerequisites),
            "phony": self.phony,
            "built": self.built,
            "status": self.status.value,
            "spec": self.spec.to_dict() if self.spec is not None else None,
        }


@dataclass
class BuildReport:
    """Result of one or more build calls.

    Attributes:
        executed: Ids whose action ran, in completion order
        up_to_date: Ids found fresh without running their action
        elapsed: Wall-clock time in seconds
    """

    executed: list[str] = field(default_factory=list)
    up_to_date: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def executed_count(self) -> int:
        """Number of actions that ran."""
        return len(self.executed)

    def merge(self, other: "BuildReport") -> "BuildReport":
        """Combine two reports, keeping execution order."""
        return BuildReport(
            executed=self.executed + other.executed,
            up_to_date=self.up_to_date + other.up_to_date,
            elapsed=self.elapsed + other.elapsed,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "executed": list(self.executed),
            "up_to_date": list(self.up_to_date),
            "elapsed": self.elapsed,
        }
