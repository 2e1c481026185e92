"""Tests for the file-read batcher.

Tests cover:
- Bucketing by session and directory
- Collapse at/above threshold, individual release below it
- Staleness flush when a read arrives after the window
- Timer-driven flush and exactly-once flushing
- flush_all() on shutdown, including a timer flush already under way
- Error status propagation into the collapsed summary
- safe_directory() fallbacks
"""

import asyncio

import pytest

from mc_relay.activity.models import ActivityRecord, ActivityStatus, ActivityType
from mc_relay.relay.batcher import FileReadBatcher, safe_directory
from mc_relay.relay.sink import ForwardResult

# Long enough that the real-time timer never fires during a test
LONG_WINDOW_MS = 60_000


class ForwardRecorder:
    """Async forward function that records what it was given."""

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.sent: list[ActivityRecord] = []

    async def __call__(self, activity: ActivityRecord) -> ForwardResult:
        if not self.ok:
            return ForwardResult(ok=False, error="HTTP 500")
        self.sent.append(activity)
        return ForwardResult(ok=True, id=str(len(self.sent)))

    @property
    def titles(self) -> list[str]:
        return [activity.title for activity in self.sent]


class GatedForward(ForwardRecorder):
    """Forward function that blocks every send until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, activity: ActivityRecord) -> ForwardResult:
        self.started.set()
        await self.release.wait()
        return await super().__call__(activity)


def _read(
    path: str,
    timestamp: float = 1.0,
    session_key: str | None = "s1",
    status: ActivityStatus = ActivityStatus.SUCCESS,
) -> ActivityRecord:
    metadata: dict = {"importance": 1, "tool": "read"}
    if session_key:
        metadata["sessionKey"] = session_key
    return ActivityRecord(
        type=ActivityType.FILE,
        title=f"Read file: {path}",
        status=status,
        timestamp=timestamp,
        metadata=metadata,
    )


@pytest.fixture
def forward() -> ForwardRecorder:
    return ForwardRecorder()


class TestSafeDirectory:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/repo/src/app.py", "/repo/src"),
            ("C:\\repo\\app.py", "C:/repo"),
            ("app.py", "workspace"),
            ("", "workspace"),
            (None, "workspace"),
        ],
    )
    def test_directory(self, path: str | None, expected: str) -> None:
        assert safe_directory(path) == expected


class TestBucketing:
    """Test how reads are grouped."""

    @pytest.mark.anyio
    async def test_same_session_and_directory_share_bucket(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, window_ms=LONG_WINDOW_MS, clock=fake_clock)

        first = await batcher.add(_read("/repo/a.py"), "/repo/a.py")
        second = await batcher.add(_read("/repo/b.py"), "/repo/b.py")

        assert first == second == "s1:/repo"
        assert len(batcher) == 1
        assert len(batcher.get_bucket(first).entries) == 2
        await batcher.flush_all()

    @pytest.mark.anyio
    async def test_sessions_and_directories_split_buckets(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, window_ms=LONG_WINDOW_MS, clock=fake_clock)

        await batcher.add(_read("/repo/a.py"), "/repo/a.py")
        await batcher.add(_read("/other/a.py"), "/other/a.py")
        await batcher.add(_read("/repo/a.py", session_key="s2"), "/repo/a.py")
        await batcher.add(_read("x", session_key=None), None)

        assert sorted(batcher.bucket_keys()) == [
            "global:workspace",
            "s1:/other",
            "s1:/repo",
            "s2:/repo",
        ]
        await batcher.flush_all()

    @pytest.mark.anyio
    async def test_nothing_sent_while_buffering(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        await batcher.add(_read("/repo/a.py"), "/repo/a.py")

        assert forward.sent == []
        await batcher.flush_all()


class TestFlush:
    """Test the collapse/release decision."""

    @pytest.mark.anyio
    async def test_below_threshold_releases_in_order(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, threshold=5, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        for name in ("a", "b", "c"):
            await batcher.add(_read(f"/repo/{name}.py"), f"/repo/{name}.py")

        forwarded = await batcher.flush("s1:/repo")

        assert forwarded == 3
        assert forward.titles == [
            "Read file: /repo/a.py",
            "Read file: /repo/b.py",
            "Read file: /repo/c.py",
        ]
        assert len(batcher) == 0

    @pytest.mark.anyio
    async def test_at_threshold_collapses(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, threshold=5, window_ms=10_000, clock=fake_clock)
        for i in range(5):
            await batcher.add(_read(f"/repo/src/f{i}.py", timestamp=100 + i), f"/repo/src/f{i}.py")

        forwarded = await batcher.flush("s1:/repo/src")

        assert forwarded == 1
        assert len(forward.sent) == 1
        summary = forward.sent[0]
        assert summary.title == "Read 5 files in /repo/src"
        assert summary.description == "Collapsed 5 file reads within 10 seconds"
        assert summary.type == ActivityType.FILE
        assert summary.status == ActivityStatus.SUCCESS
        assert summary.timestamp == 104
        assert summary.metadata == {
            "importance": 1,
            "tool": "file_read_batch",
            "sessionKey": "s1",
            "fileCount": 5,
            "directory": "/repo/src",
        }

    @pytest.mark.anyio
    async def test_error_in_bucket_marks_summary(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, threshold=2, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        await batcher.add(_read("/r/a"), "/r/a")
        await batcher.add(_read("/r/b", status=ActivityStatus.ERROR), "/r/b")

        await batcher.flush("s1:/r")

        assert forward.sent[0].status == ActivityStatus.ERROR
        assert forward.sent[0].importance == 5

    @pytest.mark.anyio
    async def test_flush_unknown_key_is_noop(self, forward) -> None:
        batcher = FileReadBatcher(forward)
        assert await batcher.flush("missing") == 0

    @pytest.mark.anyio
    async def test_flush_is_exactly_once(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        key = await batcher.add(_read("/r/a"), "/r/a")
        bucket = batcher.get_bucket(key)

        assert await batcher.flush(key) == 1
        assert await batcher.flush(key) == 0
        assert bucket.timer.cancelled is True
        assert len(forward.sent) == 1

    @pytest.mark.anyio
    async def test_failed_forward_is_not_counted(self, fake_clock) -> None:
        forward = ForwardRecorder(ok=False)
        batcher = FileReadBatcher(forward, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        key = await batcher.add(_read("/r/a"), "/r/a")

        assert await batcher.flush(key) == 0
        assert len(batcher) == 0

    @pytest.mark.anyio
    async def test_on_forwarded_callback(self, forward, fake_clock) -> None:
        seen: list[str] = []
        batcher = FileReadBatcher(
            forward,
            window_ms=LONG_WINDOW_MS,
            clock=fake_clock,
            on_forwarded=lambda activity: seen.append(activity.title),
        )
        await batcher.add(_read("/r/a"), "/r/a")
        await batcher.flush_all()

        assert seen == ["Read file: /r/a"]


class TestFlushTriggers:
    """Test staleness, timer and shutdown flushing."""

    @pytest.mark.anyio
    async def test_stale_bucket_flushed_before_append(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, threshold=5, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        key = await batcher.add(_read("/r/a"), "/r/a")
        old_bucket = batcher.get_bucket(key)

        fake_clock.advance(LONG_WINDOW_MS + 1)
        await batcher.add(_read("/r/b"), "/r/b")

        assert forward.titles == ["Read file: /r/a"]
        new_bucket = batcher.get_bucket(key)
        assert new_bucket is not old_bucket
        assert [e.activity.title for e in new_bucket.entries] == ["Read file: /r/b"]
        assert old_bucket.timer.cancelled is True
        await batcher.flush_all()

    @pytest.mark.anyio
    async def test_bucket_at_exact_window_is_not_stale(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        key = await batcher.add(_read("/r/a"), "/r/a")

        fake_clock.advance(LONG_WINDOW_MS)
        await batcher.add(_read("/r/b"), "/r/b")

        assert forward.sent == []
        assert len(batcher.get_bucket(key).entries) == 2
        await batcher.flush_all()

    @pytest.mark.anyio
    async def test_timer_flushes_bucket(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, threshold=2, window_ms=20, clock=fake_clock)
        key = await batcher.add(_read("/r/a"), "/r/a")
        await batcher.add(_read("/r/b"), "/r/b")
        timer = batcher.get_bucket(key).timer

        await timer.wait()

        assert timer.fired is True
        assert forward.titles == ["Read 2 files in /r"]
        assert len(batcher) == 0

    @pytest.mark.anyio
    async def test_flush_all_drains_every_bucket(self, forward, fake_clock) -> None:
        batcher = FileReadBatcher(forward, threshold=2, window_ms=LONG_WINDOW_MS, clock=fake_clock)
        await batcher.add(_read("/a/1"), "/a/1")
        await batcher.add(_read("/a/2"), "/a/2")
        await batcher.add(_read("/b/1"), "/b/1")

        forwarded = await batcher.flush_all()

        assert forwarded == 2
        assert sorted(forward.titles) == ["Read 2 files in /a", "Read file: /b/1"]
        assert len(batcher) == 0

    @pytest.mark.anyio
    async def test_flush_all_waits_for_running_timer_flush(self, fake_clock) -> None:
        forward = GatedForward()
        batcher = FileReadBatcher(forward, threshold=5, window_ms=20, clock=fake_clock)
        for name in ("a", "b", "c"):
            await batcher.add(_read(f"/r/{name}"), f"/r/{name}")

        await forward.started.wait()
        assert len(batcher) == 0
        assert batcher.in_flight == 1

        drain = asyncio.create_task(batcher.flush_all())
        await asyncio.sleep(0.01)
        assert not drain.done()

        forward.release.set()
        assert await drain == 3
        assert forward.titles == ["Read file: /r/a", "Read file: /r/b", "Read file: /r/c"]
        assert batcher.in_flight == 0
