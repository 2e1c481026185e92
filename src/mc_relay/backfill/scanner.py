"""Resumable, idempotent replay of transcript files into the activity store.

Processing is strictly sequential, one outbound call at a time, across
lines and across files (oldest modification first). Per activity:

1. drop it if older than the ``since`` cutoff,
2. skip it if its dedup key was already seen in this run,
3. skip it if the store already holds it (per-UTC-day remote cache),
4. otherwise post it (or, in dry-run, only mark it as seen).

The first post failure halts the whole run. The failing file's offset stops
at the line that failed, so the next run retries from there; lines before it
are protected from re-sending by the remote dedup cache.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mc_relay.activity.classifier import activity_dedup_key, enrich_raw_tool_call, now_ms
from mc_relay.activity.models import ActivityRecord, RawToolCall, is_record
from mc_relay.backfill.dedupe import QueryClient, RemoteDedupe
from mc_relay.backfill.discovery import discover_transcripts
from mc_relay.backfill.state import BackfillState, load_state, save_state
from mc_relay.backfill.transcript import (
    PendingToolCall,
    entry_timestamp,
    extract_tool_calls,
    extract_tool_results,
)
from mc_relay.config import BackfillSettings
from mc_relay.constants import FIELD_TOOL, TRANSCRIPT_SUFFIX, UNKNOWN_TOOL_NAME
from mc_relay.exceptions import BackfillError, SinkError
from mc_relay.relay.sink import SinkClient

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r?\n")


@dataclass
class ProcessStats:
    """Counters for one file or a whole run."""

    sent: int = 0
    dry_run: int = 0
    skipped_since: int = 0
    skipped_duplicate_run: int = 0
    skipped_duplicate_remote: int = 0
    parse_errors: int = 0
    post_errors: int = 0

    def add(self, other: "ProcessStats") -> None:
        self.sent += other.sent
        self.dry_run += other.dry_run
        self.skipped_since += other.skipped_since
        self.skipped_duplicate_run += other.skipped_duplicate_run
        self.skipped_duplicate_remote += other.skipped_duplicate_remote
        self.parse_errors += other.parse_errors
        self.post_errors += other.post_errors


@dataclass
class FileResult:
    path: Path
    halted: bool
    next_offset: int
    max_timestamp: float | None
    stats: ProcessStats


@dataclass
class BackfillReport:
    """Outcome of a full run."""

    files_discovered: int = 0
    files_processed: int = 0
    halted: bool = False
    stats: ProcessStats = field(default_factory=ProcessStats)

    @property
    def exit_code(self) -> int:
        return 1 if self.stats.post_errors > 0 else 0


def read_lines(path: Path) -> list[str]:
    """Split a transcript into lines; a trailing newline adds no empty line.

    Raises:
        BackfillError: If the file cannot be read as UTF-8.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise BackfillError(f"Failed to read transcript: {e}", path=path) from e

    lines = _LINE_BREAK.split(content)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


class BackfillScanner:
    """Replays transcripts through the classifier with three-layer dedup.

    Args:
        sink: Blocking sink client; unused in dry-run.
        dedupe: Remote per-day dedup cache.
        state: Offsets loaded from disk; updated in place by ``run``.
        since_ms: Optional cutoff; older activities are counted and dropped.
        dry_run: Classify and dedupe, but never post.
        on_dry_run: Called with each activity a dry-run would have sent.
    """

    def __init__(
        self,
        sink: SinkClient,
        dedupe: RemoteDedupe,
        state: BackfillState,
        since_ms: float | None = None,
        dry_run: bool = False,
        on_dry_run: Callable[[ActivityRecord], None] | None = None,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.sink = sink
        self.dedupe = dedupe
        self.state = state
        self.since_ms = since_ms
        self.dry_run = dry_run
        self._on_dry_run = on_dry_run
        self._clock = clock
        self.run_keys: set[str] = set()

    def build_activity(
        self,
        path: Path,
        pending: PendingToolCall | None,
        tool_call_id: str,
        tool_name: str | None,
        result: dict[str, Any],
        timestamp: float,
    ) -> ActivityRecord:
        """Pair a result with its call (if seen) and classify it."""
        session_id = path.name.removesuffix(TRANSCRIPT_SUFFIX)
        call = RawToolCall(
            tool=pending.tool if pending else (tool_name or UNKNOWN_TOOL_NAME),
            params=pending.params if pending else {},
            result=result,
            timestamp=timestamp,
            session_key=session_id,
        )
        activity = enrich_raw_tool_call(call).activity
        activity.metadata[FIELD_TOOL] = activity.tool or call.tool
        activity.metadata["sessionId"] = session_id
        activity.metadata["sessionFile"] = str(path)
        activity.metadata["toolCallId"] = tool_call_id
        return activity

    def _handle(self, activity: ActivityRecord, stats: ProcessStats) -> bool:
        """Filter, dedupe and send one activity.

        Returns:
            False when posting failed and the run must halt.

        Raises:
            RemoteQueryError: If the store cannot be queried for dedup.
        """
        if self.since_ms is not None and activity.timestamp < self.since_ms:
            stats.skipped_since += 1
            return True

        key = activity_dedup_key(activity)
        if key in self.run_keys:
            stats.skipped_duplicate_run += 1
            return True

        if self.dedupe.has(activity):
            self.run_keys.add(key)
            stats.skipped_duplicate_remote += 1
            return True

        if self.dry_run:
            self.run_keys.add(key)
            self.dedupe.remember(activity)
            stats.dry_run += 1
            if self._on_dry_run is not None:
                self._on_dry_run(activity)
            return True

        try:
            self.sink.post(activity)
        except SinkError as e:
            logger.error(
                f"Failed to post activity from {activity.metadata.get('sessionFile')}: {e}"
            )
            stats.post_errors += 1
            return False

        self.run_keys.add(key)
        self.dedupe.remember(activity)
        stats.sent += 1
        return True

    def process_file(self, path: Path) -> FileResult:
        """Process one transcript from its persisted offset.

        The offset advances past blank, non-object and malformed lines. On a
        post failure it stays at the failing line.
        """
        lines = read_lines(path)
        entry = self.state.get(path)
        start = min(entry.line_offset if entry else 0, len(lines))
        max_timestamp = entry.last_timestamp if entry else None
        pending_calls: dict[str, PendingToolCall] = {}
        stats = ProcessStats()
        next_offset = start

        for index in range(start, len(lines)):
            line = lines[index]
            if not line.strip():
                next_offset = index + 1
                continue

            try:
                parsed = _parse_line(line)
            except ValueError:
                stats.parse_errors += 1
                next_offset = index + 1
                continue
            if parsed is None:
                next_offset = index + 1
                continue

            timestamp = entry_timestamp(parsed)
            if timestamp is None:
                timestamp = self._clock()
            if not max_timestamp or timestamp > max_timestamp:
                max_timestamp = timestamp

            for extracted in extract_tool_calls(parsed, timestamp):
                pending_calls[extracted.id] = extracted.call

            for result in extract_tool_results(parsed, timestamp):
                activity = self.build_activity(
                    path,
                    pending_calls.pop(result.tool_call_id, None),
                    result.tool_call_id,
                    result.tool_name,
                    result.result,
                    result.timestamp,
                )
                if not self._handle(activity, stats):
                    logger.error(f"Halting backfill at {path}:{index + 1}")
                    return FileResult(path, True, next_offset, max_timestamp, stats)

            next_offset = index + 1

        return FileResult(path, False, next_offset, max_timestamp, stats)

    def run(self, files: Iterable[Path]) -> BackfillReport:
        """Process files in order, stopping after the first halted file.

        Offsets are recorded in ``self.state``; persisting them is the
        caller's job.
        """
        files = list(files)
        report = BackfillReport(files_discovered=len(files))
        for path in files:
            result = self.process_file(path)
            report.files_processed += 1
            report.stats.add(result.stats)
            self.state.update(path, result.next_offset, result.max_timestamp)
            if result.halted:
                report.halted = True
                break
        return report


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name} is not allowed")


def _parse_line(line: str) -> dict[str, Any] | None:
    """Decode one JSONL line; non-object values yield None.

    Raises:
        ValueError: If the line is not valid JSON or uses NaN/Infinity.
    """
    parsed = json.loads(line, parse_constant=_reject_constant)
    return parsed if is_record(parsed) else None


def run_backfill(
    settings: BackfillSettings,
    roots: Iterable[Path] | None = None,
    since_ms: float | None = None,
    dry_run: bool = False,
    on_dry_run: Callable[[ActivityRecord], None] | None = None,
    sink: SinkClient | None = None,
    query_client: QueryClient | None = None,
) -> BackfillReport:
    """Discover transcripts, replay them, and persist offsets (unless dry-run).

    Args:
        settings: Backfill settings (endpoints, state path, default roots).
        roots: Scan roots replacing ``settings.scan_dirs``.
        since_ms: Optional cutoff in epoch milliseconds.
        dry_run: Classify and dedupe without posting or saving state.
        on_dry_run: Callback for activities a dry-run would have sent.
        sink: Injected sink client (tests); owned by the caller.
        query_client: Injected query client (tests); owned by the caller.

    Raises:
        BackfillError: If a transcript or the state file cannot be accessed.
        RemoteQueryError: If the store cannot be queried for dedup.
    """
    scan_roots = list(roots) if roots is not None else settings.resolved_scan_dirs()
    files = discover_transcripts(scan_roots, max_depth=settings.max_scan_depth)
    state_path = settings.resolved_state_path()
    state = load_state(state_path)
    logger.info(f"Discovered {len(files)} transcript file(s) in {len(scan_roots)} root(s)")

    owned_sink = sink is None
    owned_query = query_client is None
    sink = sink or SinkClient(settings.sink_url, timeout_seconds=settings.sink_timeout_seconds)
    query_client = query_client or QueryClient(
        settings.query_url, timeout_seconds=settings.sink_timeout_seconds
    )
    try:
        scanner = BackfillScanner(
            sink=sink,
            dedupe=RemoteDedupe(
                query_client,
                range_limit=settings.range_query_limit,
                fallback_limit=settings.fallback_query_limit,
            ),
            state=state,
            since_ms=since_ms,
            dry_run=dry_run,
            on_dry_run=on_dry_run,
        )
        report = scanner.run(files)
    finally:
        if owned_sink:
            sink.close()
        if owned_query:
            query_client.close()

    if not dry_run:
        save_state(state_path, state)
    return report
