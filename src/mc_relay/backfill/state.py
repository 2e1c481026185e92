"""Persisted per-file offsets for resumable backfill runs.

On disk::

    {
      "version": 1,
      "files": {
        "/abs/path/session.jsonl": {"lineOffset": 42, "lastTimestamp": 1700000000000, "updatedAt": 1700000050000}
      }
    }

Offsets assume transcripts are append-only. A file that is truncated or
rewritten after being tracked is not detected.
"""

import json
import logging
import math
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mc_relay.activity.classifier import now_ms
from mc_relay.activity.models import is_finite_number, is_record
from mc_relay.constants import BACKFILL_STATE_VERSION
from mc_relay.exceptions import BackfillError

logger = logging.getLogger(__name__)


@dataclass
class FileState:
    line_offset: int = 0
    last_timestamp: float | None = None
    updated_at: float = field(default_factory=now_ms)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileState":
        """Normalize one persisted entry; bad offsets become 0."""
        raw_offset = data.get("lineOffset")
        offset = (
            math.floor(raw_offset) if is_finite_number(raw_offset) and raw_offset >= 0 else 0
        )
        last_timestamp = data.get("lastTimestamp")
        updated_at = data.get("updatedAt")
        return cls(
            line_offset=offset,
            last_timestamp=last_timestamp if is_finite_number(last_timestamp) else None,
            updated_at=updated_at if is_finite_number(updated_at) else now_ms(),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"lineOffset": self.line_offset}
        if self.last_timestamp is not None:
            data["lastTimestamp"] = self.last_timestamp
        data["updatedAt"] = self.updated_at
        return data


@dataclass
class BackfillState:
    """Offsets keyed by absolute transcript path."""

    files: dict[str, FileState] = field(default_factory=dict)

    def get(self, path: Path | str) -> FileState | None:
        return self.files.get(str(path))

    def offset_for(self, path: Path | str) -> int:
        entry = self.get(path)
        return entry.line_offset if entry else 0

    def update(self, path: Path | str, line_offset: int, last_timestamp: float | None) -> None:
        self.files[str(path)] = FileState(
            line_offset=line_offset,
            last_timestamp=last_timestamp,
            updated_at=now_ms(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": BACKFILL_STATE_VERSION,
            "files": {path: entry.to_dict() for path, entry in self.files.items()},
        }


def load_state(path: Path) -> BackfillState:
    """Load state from ``path``.

    A missing, unreadable or wrong-version file yields empty state; entries
    that are not objects are dropped.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return BackfillState()
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable backfill state {path}: {e}")
        return BackfillState()

    if (
        not is_record(data)
        or data.get("version") != BACKFILL_STATE_VERSION
        or not is_record(data.get("files"))
    ):
        logger.warning(f"Ignoring backfill state {path} with unexpected shape or version")
        return BackfillState()

    files = {
        entry_path: FileState.from_dict(entry)
        for entry_path, entry in data["files"].items()
        if is_record(entry)
    }
    return BackfillState(files=files)


def save_state(path: Path, state: BackfillState) -> None:
    """Write state atomically: temp file in the same directory, then ``os.replace``.

    Raises:
        BackfillError: If the file cannot be written.
    """
    content = json.dumps(state.to_dict(), indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise BackfillError(f"Failed to write backfill state: {e}", path=path) from e
    logger.debug(f"Saved backfill state for {len(state.files)} file(s) to {path}")
