"""Tests for RelayPipeline.

Tests cover:
- process_event(): rate limit, dedup, forward, sink failure
- process_tool_call(): file reads buffered, everything else forwarded
- from_settings(): batcher threshold, window and clock come from settings
- shutdown(): drains buckets exactly once, waits for a running timer flush
- Activity log line per forwarded activity
"""

import asyncio
import json
import logging

import httpx
import pytest

from mc_relay.activity.models import RawToolCall, RelayEvent
from mc_relay.config import RelaySettings
from mc_relay.constants import ACTIVITY_TRAIL_LOGGER
from mc_relay.relay.pipeline import EventDisposition, RelayPipeline

SINK_URL = "http://sink.test/activity/log"


class GatedSink:
    """Async sink handler that holds every post until ``release`` is set."""

    def __init__(self) -> None:
        self.posted: list[dict] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.started.set()
        await self.release.wait()
        self.posted.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "id": f"act_{len(self.posted)}"})


def _read(name: str) -> RawToolCall:
    return RawToolCall(tool="read", params={"path": f"/repo/{name}.py"}, session_key="s1")


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        sink_url=SINK_URL,
        file_read_batch_threshold=3,
        file_read_batch_window_ms=60_000,
    )


@pytest.fixture
def pipeline(settings, sink_transport, fake_clock) -> RelayPipeline:
    return RelayPipeline.from_settings(
        settings,
        client=httpx.AsyncClient(transport=sink_transport),
        clock=fake_clock,
    )


class TestProcessEvent:
    """Test the /events path."""

    @pytest.mark.anyio
    async def test_forwards_event(self, pipeline, sink_recorder) -> None:
        outcome = await pipeline.process_event(RelayEvent("cron_fire", "Morning digest"))

        assert outcome.disposition == EventDisposition.FORWARDED
        assert outcome.result.id == "act_1"
        assert sink_recorder.posted[0]["type"] == "cron"
        assert sink_recorder.posted[0]["title"] == "Morning digest"
        await pipeline.shutdown()

    @pytest.mark.anyio
    async def test_rate_limited_by_event_type(self, pipeline, sink_recorder, fake_clock) -> None:
        await pipeline.process_event(RelayEvent("cron_fire", "Job A"))
        fake_clock.advance(500)
        outcome = await pipeline.process_event(RelayEvent("cron_fire", "Job B"))

        assert outcome.disposition == EventDisposition.RATE_LIMITED
        assert sink_recorder.titles == ["Job A"]
        await pipeline.shutdown()

    @pytest.mark.anyio
    async def test_duplicate_title_suppressed(self, pipeline, sink_recorder, fake_clock) -> None:
        await pipeline.process_event(RelayEvent("cron_fire", "Digest"))
        fake_clock.advance(2000)
        outcome = await pipeline.process_event(RelayEvent("cron_fire", "Digest"))

        assert outcome.disposition == EventDisposition.DEDUPLICATED
        assert sink_recorder.titles == ["Digest"]
        await pipeline.shutdown()

    @pytest.mark.anyio
    async def test_sink_failure(self, pipeline, sink_recorder) -> None:
        sink_recorder.fail_all = True
        outcome = await pipeline.process_event(RelayEvent("error", "Crashed"))

        assert outcome.disposition == EventDisposition.FAILED
        assert outcome.result.error == "HTTP 500"
        await pipeline.shutdown()


class TestProcessToolCall:
    """Test the /tools path."""

    @pytest.mark.anyio
    async def test_exec_is_forwarded(self, pipeline, sink_recorder) -> None:
        outcome = await pipeline.process_tool_call(
            RawToolCall(tool="bash", params={"command": "git push"}, timestamp=1.0)
        )

        assert outcome.accepted is True
        assert outcome.buffered is False
        assert outcome.forwarded == 1
        assert outcome.title == "Pushed code to GitHub"
        assert sink_recorder.titles == ["Pushed code to GitHub"]
        await pipeline.shutdown()

    @pytest.mark.anyio
    async def test_file_read_is_buffered(self, pipeline, sink_recorder) -> None:
        outcome = await pipeline.process_tool_call(
            RawToolCall(tool="read", params={"path": "/repo/a.py"}, session_key="s1")
        )

        assert outcome.accepted is True
        assert outcome.buffered is True
        assert outcome.forwarded == 0
        assert pipeline.queued_buckets == 1
        assert sink_recorder.posted == []
        await pipeline.shutdown()

    @pytest.mark.anyio
    async def test_forward_failure_is_reported(self, pipeline, sink_recorder) -> None:
        sink_recorder.fail_all = True
        outcome = await pipeline.process_tool_call(RawToolCall(tool="bash", params={"command": "ls"}))

        assert outcome.accepted is False
        assert outcome.error == "HTTP 500"
        await pipeline.shutdown()

    @pytest.mark.anyio
    async def test_tool_calls_skip_event_guards(self, pipeline, sink_recorder) -> None:
        call = RawToolCall(tool="bash", params={"command": "ls"}, timestamp=1.0)
        await pipeline.process_tool_call(call)
        await pipeline.process_tool_call(call)

        assert sink_recorder.titles == ["Ran command: ls", "Ran command: ls"]
        await pipeline.shutdown()


class TestFromSettings:
    @pytest.mark.anyio
    async def test_batcher_uses_configured_values(
        self, sink_transport, sink_recorder, fake_clock
    ) -> None:
        settings = RelaySettings(
            sink_url=SINK_URL,
            file_read_batch_threshold=2,
            file_read_batch_window_ms=30_000,
        )
        pipeline = RelayPipeline.from_settings(
            settings,
            client=httpx.AsyncClient(transport=sink_transport),
            clock=fake_clock,
        )

        await pipeline.process_tool_call(_read("a"))
        fake_clock.advance(20_000)
        await pipeline.process_tool_call(_read("b"))

        # Still inside the configured window on the injected clock
        assert sink_recorder.posted == []

        fake_clock.advance(15_000)
        await pipeline.process_tool_call(_read("c"))

        assert sink_recorder.titles == ["Read 2 files in /repo"]
        assert pipeline.queued_buckets == 1
        await pipeline.shutdown()


class TestShutdown:
    @pytest.mark.anyio
    async def test_shutdown_drains_buckets(self, pipeline, sink_recorder) -> None:
        for name in ("a", "b", "c"):
            await pipeline.process_tool_call(
                RawToolCall(tool="read", params={"path": f"/repo/{name}.py"}, session_key="s1")
            )

        forwarded = await pipeline.shutdown()

        assert forwarded == 1
        assert sink_recorder.titles == ["Read 3 files in /repo"]
        assert pipeline.queued_buckets == 0

    @pytest.mark.anyio
    async def test_shutdown_is_idempotent(self, pipeline, sink_recorder) -> None:
        await pipeline.process_tool_call(RawToolCall(tool="read", params={"path": "/r/a"}))

        assert await pipeline.shutdown() == 1
        assert await pipeline.shutdown() == 0
        assert len(sink_recorder.posted) == 1

    @pytest.mark.anyio
    async def test_shutdown_waits_for_running_timer_flush(self, fake_clock) -> None:
        sink = GatedSink()
        settings = RelaySettings(
            sink_url=SINK_URL,
            file_read_batch_threshold=5,
            file_read_batch_window_ms=20,
        )
        pipeline = RelayPipeline.from_settings(
            settings,
            client=httpx.AsyncClient(transport=httpx.MockTransport(sink)),
            clock=fake_clock,
        )
        for name in ("a", "b", "c"):
            await pipeline.process_tool_call(_read(name))

        # The timer has popped the bucket and its first post is in flight
        await sink.started.wait()
        assert pipeline.queued_buckets == 0

        shutdown = asyncio.create_task(pipeline.shutdown())
        await asyncio.sleep(0.01)
        assert not shutdown.done()

        sink.release.set()
        assert await shutdown == 3
        assert [activity["title"] for activity in sink.posted] == [
            "Read file: /repo/a.py",
            "Read file: /repo/b.py",
            "Read file: /repo/c.py",
        ]


class TestActivityLog:
    @pytest.mark.anyio
    async def test_forwarded_activity_is_logged(self, pipeline, caplog) -> None:
        with caplog.at_level(logging.INFO, logger=ACTIVITY_TRAIL_LOGGER):
            await pipeline.process_tool_call(
                RawToolCall(tool="bash", params={"command": "pytest"}, timestamp=1.0)
            )

        assert "code: Ran test suite" in caplog.messages
        await pipeline.shutdown()
