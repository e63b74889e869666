"""Persistent action fingerprints.

Modification times alone cannot tell that an object was compiled with
different flags. The tracker remembers, per target, the fingerprint of the
ActionSpec that last produced it; a target whose current spec fingerprint
differs from the recorded one is stale even if its output is newer than all
of its inputs.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".extbuild_state.json"


class BuildStateTracker:
    """Tracks the action fingerprint each target was last built with.

    Backed by a JSON file. Thread-safe for concurrent use from graph workers.
    """

    def __init__(self, state_file: Path):
        """Initialize the tracker and load any previous state.

        Args:
            state_file: Path to the JSON state file
        """
        self.state_file = state_file
        self.fingerprints: dict[str, str] = {}
        self.lock = threading.Lock()
        self._dirty = False
        self._load()

    def _load(self) -> None:
        if not self.state_file.exists():
            logger.debug(f"Build state not found: {self.state_file}")
            return

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable build state {self.state_file}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed build state {self.state_file}")
            return
        self.fingerprints = {str(k): str(v) for k, v in data.items()}
        logger.debug(f"Loaded {len(self.fingerprints)} fingerprints from {self.state_file}")

    def recorded(self, target_id: str) -> Optional[str]:
        """Return the fingerprint recorded for ``target_id``, if any."""
        with self.lock:
            return self.fingerprints.get(target_id)

    def has_changed(self, target_id: str, fingerprint: str) -> bool:
        """Check whether a target was last built with a different fingerprint.

        A target with no recorded fingerprint is not considered changed; its
        current fingerprint is adopted by the next ``record`` call.
        """
        previous = self.recorded(target_id)
        return previous is not None and previous != fingerprint

    def record(self, target_id: str, fingerprint: str) -> None:
        """Remember the fingerprint a target is now up to date with."""
        with self.lock:
            if self.fingerprints.get(target_id) != fingerprint:
                self.fingerprints[target_id] = fingerprint
                self._dirty = True

    def forget(self, target_id: str) -> None:
        """Drop the record for a target, e.g. after its action failed."""
        with self.lock:
            if self.fingerprints.pop(target_id, None) is not None:
                self._dirty = True

    def save(self) -> None:
        """Write the state to disk atomically (temp file + rename).

        Does nothing when no fingerprint changed since loading.
        """
        with self.lock:
            if not self._dirty:
                return
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.state_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(self.fingerprints, f, indent=2, sort_keys=True)
            temp_file.replace(self.state_file)
            self._dirty = False
            logger.debug(f"Saved {len(self.fingerprints)} fingerprints to {self.state_file}")
