"""Action specifications and the action strategy interface.

An ActionSpec is the immutable description of how one output is produced.
An Action is the strategy object that knows how to carry out specs of one
kind; the task graph invokes it polymorphically without knowing whether it
generates, compiles, archives or links.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol


class CommandFlags(Protocol):
    """Flag values an action renders into its command line."""

    def to_dict(self) -> dict[str, Any]: ...


class ActionKind(Enum):
    """Kind of action that produces a target."""

    GENERATE = "generate"
    COMPILE = "compile"
    ARCHIVE = "archive"
    LINK = "link"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ActionSpec:
    """How to produce exactly one output file.

    Attributes:
        kind: Which action produces the output
        output: Path of the produced file
        sources: Input files (template for generate, source for compile,
            objects for archive and link)
        flags: Compiler/linker flag set (None for actions without flags)
        libraries: Library references for linking (archive paths or link flags)
        config_source: Configuration-option source (generate only)
        toolchain: Tool command and platform flags the action runs with
    """

    kind: ActionKind
    output: Path
    sources: tuple[Path, ...] = field(default_factory=tuple)
    flags: Optional[CommandFlags] = None
    libraries: tuple[str, ...] = field(default_factory=tuple)
    config_source: Optional[Path] = None
    toolchain: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "kind": self.kind.value,
            "output": str(self.output),
            "sources": [str(s) for s in self.sources],
            "flags": self.flags.to_dict() if self.flags is not None else None,
            "libraries": list(self.libraries),
            "config_source": str(self.config_source) if self.config_source is not None else None,
            "toolchain": list(self.toolchain),
        }

    def fingerprint(self) -> str:
        """SHA-256 digest over every field that influences the produced output.

        File contents are not included; content changes are tracked through
        modification times.
        """
        payload = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class Action(ABC):
    """Strategy that carries out ActionSpecs of one kind."""

    kind: ActionKind

    @abstractmethod
    def execute(self, spec: Optional[ActionSpec]) -> None:
        """Produce ``spec.output``.

        Args:
            spec: What to produce and from which inputs (None when the action
                belongs to a phony target)

        Raises:
            BuildActionError: If the output could not be produced
        """
        pass

    def discard_output(self, spec: ActionSpec) -> None:
        """Remove what a failed ``execute`` left at ``spec.output``.

        Called by the task graph so a failed target never looks up to date.
        """
        spec.output.unlink(missing_ok=True)
