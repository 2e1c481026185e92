"""Collapsing of file-read bursts.

File reads are the noisiest, least informative activity an agent produces.
Reads from the same session and directory are held in a bucket for a short
window; when the bucket is flushed it either collapses into one
``Read N files in <dir>`` activity (at or above the threshold) or releases
every read individually in arrival order.

A bucket is flushed exactly once, by whichever comes first:
- its window timer firing,
- a new read arriving after the window has elapsed (staleness check),
- shutdown (``flush_all``).

``flush`` removes the bucket and cancels its timer before the first await,
so a concurrent trigger always finds the bucket gone. The sends then run in
a tracked task; ``flush_all`` waits for flushes already under way, so
shutdown never closes the sink client beneath them.
"""

import asyncio
import logging
import posixpath
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from mc_relay.activity.classifier import now_ms
from mc_relay.activity.models import ActivityRecord, ActivityStatus, ActivityType
from mc_relay.constants import (
    DEFAULT_DIRECTORY,
    DEFAULT_FILE_READ_BATCH_THRESHOLD,
    DEFAULT_FILE_READ_BATCH_WINDOW_MS,
    DEFAULT_SESSION_KEY,
    FILE_READ_BATCH_TOOL,
    FIELD_IMPORTANCE,
    FIELD_SESSION_KEY,
    FIELD_TOOL,
    IMPORTANCE_ERROR,
    IMPORTANCE_FILE_READ,
)
from mc_relay.relay.scheduler import DelayedTask
from mc_relay.relay.sink import ForwardResult

logger = logging.getLogger(__name__)

ForwardFn = Callable[[ActivityRecord], Awaitable[ForwardResult]]


def safe_directory(file_path: str | None) -> str:
    """Directory used for bucketing; ``workspace`` when there is no usable path."""
    if not file_path:
        return DEFAULT_DIRECTORY
    directory = posixpath.dirname(file_path.replace("\\", "/"))
    return directory if directory not in ("", ".") else DEFAULT_DIRECTORY


@dataclass
class FileReadEntry:
    activity: ActivityRecord
    file_path: str | None = None


@dataclass
class FileReadBucket:
    """Pending reads for one ``session:directory`` key."""

    key: str
    session_key: str
    directory: str
    started_at: float
    entries: list[FileReadEntry] = field(default_factory=list)
    timer: DelayedTask | None = None

    @property
    def has_error(self) -> bool:
        return any(entry.activity.status == ActivityStatus.ERROR for entry in self.entries)


class FileReadBatcher:
    """Stateful aggregator for ``file_read`` activities.

    Args:
        forward: Coroutine posting one activity to the sink.
        threshold: Minimum reads in a bucket to collapse into a summary.
        window_ms: Bucket lifetime before it is flushed.
        clock: Epoch-milliseconds clock (injectable for tests).
    """

    def __init__(
        self,
        forward: ForwardFn,
        threshold: int = DEFAULT_FILE_READ_BATCH_THRESHOLD,
        window_ms: int = DEFAULT_FILE_READ_BATCH_WINDOW_MS,
        clock: Callable[[], float] = now_ms,
        on_forwarded: Callable[[ActivityRecord], None] | None = None,
    ) -> None:
        self._forward = forward
        self._threshold = threshold
        self._window_ms = window_ms
        self._clock = clock
        self._on_forwarded = on_forwarded
        self._buckets: dict[str, FileReadBucket] = {}
        self._in_flight: set[asyncio.Task[int]] = set()

    def __len__(self) -> int:
        return len(self._buckets)

    @property
    def in_flight(self) -> int:
        """Flushes whose bucket is already removed but whose sends are still running."""
        return sum(1 for task in self._in_flight if not task.done())

    def bucket_keys(self) -> list[str]:
        return list(self._buckets)

    def get_bucket(self, key: str) -> FileReadBucket | None:
        return self._buckets.get(key)

    @staticmethod
    def bucket_key(activity: ActivityRecord, file_path: str | None) -> str:
        return f"{activity.session_key or DEFAULT_SESSION_KEY}:{safe_directory(file_path)}"

    async def add(self, activity: ActivityRecord, file_path: str | None = None) -> str:
        """Buffer one file-read activity.

        Returns:
            The bucket key the activity was appended to.
        """
        key = self.bucket_key(activity, file_path)
        existing = self._buckets.get(key)
        if existing is not None and self._clock() - existing.started_at > self._window_ms:
            logger.debug(f"File-read bucket {key} is stale, flushing before append")
            await self.flush(key)

        entry = FileReadEntry(activity=activity, file_path=file_path)
        bucket = self._buckets.get(key)
        if bucket is not None:
            bucket.entries.append(entry)
            return key

        bucket = FileReadBucket(
            key=key,
            session_key=activity.session_key or DEFAULT_SESSION_KEY,
            directory=safe_directory(file_path),
            started_at=self._clock(),
            entries=[entry],
        )
        self._buckets[key] = bucket
        bucket.timer = DelayedTask(
            self._window_ms / 1000,
            lambda: self._flush_on_timer(bucket),
            name=f"file-read-flush:{key}",
        )
        return key

    async def _flush_on_timer(self, bucket: FileReadBucket) -> None:
        # Only flush if this timer's bucket is still the live one
        if self._buckets.get(bucket.key) is bucket:
            await self.flush(bucket.key)

    async def flush(self, key: str) -> int:
        """Flush one bucket.

        Returns:
            Number of activities the sink accepted (1 for a collapsed bucket).
        """
        bucket = self._buckets.pop(key, None)
        if bucket is None:
            return 0
        if bucket.timer is not None:
            bucket.timer.cancel()

        task = asyncio.get_running_loop().create_task(
            self._send_bucket(bucket), name=f"file-read-send:{key}"
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        # A cancelled caller must not abandon a bucket that is already popped
        return await asyncio.shield(task)

    async def flush_all(self) -> int:
        """Flush every bucket and wait for flushes already running (shutdown path).

        Returns:
            Number of activities the sink accepted while draining.
        """
        forwarded = 0
        for key in list(self._buckets):
            forwarded += await self.flush(key)

        running = [task for task in self._in_flight if not task.done()]
        if running:
            logger.debug(f"Waiting for {len(running)} file-read flush(es) in progress")
            results = await asyncio.gather(*running, return_exceptions=True)
            forwarded += sum(result for result in results if isinstance(result, int))
        return forwarded

    async def _send_bucket(self, bucket: FileReadBucket) -> int:
        if len(bucket.entries) >= self._threshold:
            return await self._send(self._collapse(bucket))

        forwarded = 0
        for entry in bucket.entries:
            forwarded += await self._send(entry.activity)
        return forwarded

    def _collapse(self, bucket: FileReadBucket) -> ActivityRecord:
        count = len(bucket.entries)
        status = ActivityStatus.ERROR if bucket.has_error else ActivityStatus.SUCCESS
        importance = IMPORTANCE_ERROR if status == ActivityStatus.ERROR else IMPORTANCE_FILE_READ
        return ActivityRecord(
            type=ActivityType.FILE,
            title=f"Read {count} files in {bucket.directory}",
            description=(
                f"Collapsed {count} file reads within {self._window_ms / 1000:g} seconds"
            ),
            status=status,
            timestamp=bucket.entries[-1].activity.timestamp,
            metadata={
                FIELD_IMPORTANCE: importance,
                FIELD_TOOL: FILE_READ_BATCH_TOOL,
                FIELD_SESSION_KEY: bucket.session_key,
                "fileCount": count,
                "directory": bucket.directory,
            },
        )

    async def _send(self, activity: ActivityRecord) -> int:
        result = await self._forward(activity)
        if not result.ok:
            logger.error(f"Dropped file-read activity '{activity.title}': {result.error}")
            return 0
        if self._on_forwarded is not None:
            self._on_forwarded(activity)
        return 1
