"""Discovery of agent transcript files."""

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from mc_relay.constants import (
    DEFAULT_MAX_SCAN_DEPTH,
    TRANSCRIPT_DELETED_MARKER,
    TRANSCRIPT_LOCK_SUFFIX,
    TRANSCRIPT_SUFFIX,
)

logger = logging.getLogger(__name__)


def is_transcript_file(path: Path) -> bool:
    """``*.jsonl`` files that are neither lock files nor soft-deleted sessions."""
    name = path.name
    return (
        name.endswith(TRANSCRIPT_SUFFIX)
        and not name.endswith(TRANSCRIPT_LOCK_SUFFIX)
        and TRANSCRIPT_DELETED_MARKER not in name
    )


def collect_transcript_files(root: Path, max_depth: int = DEFAULT_MAX_SCAN_DEPTH) -> list[Path]:
    """Collect transcript files under ``root``.

    Args:
        root: Directory to walk, or a single transcript file.
        max_depth: Deepest directory level to descend into (root is 0).

    Returns:
        Absolute paths of matching files, in walk order. A missing root
        yields an empty list.
    """
    resolved = root.expanduser().resolve()
    if not resolved.exists():
        logger.debug(f"Scan root does not exist: {resolved}")
        return []

    if resolved.is_file():
        return [resolved] if is_transcript_file(resolved) else []

    files: list[Path] = []
    for current, dirs, filenames in os.walk(resolved):
        current_path = Path(current)
        depth = len(current_path.relative_to(resolved).parts)

        # Prune in place so os.walk never descends past max_depth
        if depth >= max_depth:
            dirs[:] = []

        for filename in filenames:
            file_path = current_path / filename
            if is_transcript_file(file_path) and file_path.is_file():
                files.append(file_path)

    return files


def discover_transcripts(
    roots: Iterable[Path],
    max_depth: int = DEFAULT_MAX_SCAN_DEPTH,
) -> list[Path]:
    """Collect transcripts from every root, deduplicated, oldest modification first."""
    unique: dict[Path, float] = {}
    for root in roots:
        for file_path in collect_transcript_files(root, max_depth=max_depth):
            if file_path in unique:
                continue
            try:
                unique[file_path] = file_path.stat().st_mtime
            except OSError as e:
                logger.warning(f"Skipping unreadable transcript {file_path}: {e}")

    return sorted(unique, key=lambda path: unique[path])
