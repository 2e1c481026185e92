"""The live relay pipeline as one service object.

``RelayPipeline`` owns the guards, the file-read batcher and the sink
forwarder, so all process-wide relay state has an explicit lifecycle:
construct it at startup, call ``shutdown()`` to drain buckets and close the
HTTP client. Everything runs on one event loop; the only suspension points
are outbound sink calls.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from mc_relay.activity.classifier import build_event_activity, enrich_raw_tool_call, now_ms
from mc_relay.activity.models import ActivityRecord, RawToolCall, RelayEvent, ToolKind
from mc_relay.config import RelaySettings
from mc_relay.constants import ACTIVITY_TRAIL_LOGGER
from mc_relay.relay.batcher import FileReadBatcher
from mc_relay.relay.guards import DedupGate, RateLimiter
from mc_relay.relay.sink import ForwardResult, SinkForwarder

logger = logging.getLogger(__name__)
activity_logger = logging.getLogger(ACTIVITY_TRAIL_LOGGER)


class EventDisposition(str, Enum):
    FORWARDED = "forwarded"
    RATE_LIMITED = "rate_limited"
    DEDUPLICATED = "deduplicated"
    FAILED = "failed"


@dataclass
class EventOutcome:
    """Result of pushing one ``/events`` payload through the pipeline."""

    disposition: EventDisposition
    activity: ActivityRecord | None = None
    result: ForwardResult | None = None


@dataclass
class ProcessOutcome:
    """Result of pushing one raw tool call through the pipeline."""

    accepted: bool
    buffered: bool
    forwarded: int
    title: str
    error: str | None = None


def log_forwarded(activity: ActivityRecord) -> None:
    activity_logger.info(f"{activity.type.value}: {activity.title}")


class RelayPipeline:
    """Classifier → guards → batcher → sink, with explicit construction and teardown."""

    def __init__(
        self,
        forwarder: SinkForwarder,
        rate_limiter: RateLimiter,
        dedup_gate: DedupGate,
        batcher: FileReadBatcher | None = None,
    ) -> None:
        self.forwarder = forwarder
        self.rate_limiter = rate_limiter
        self.dedup_gate = dedup_gate
        if batcher is None:
            batcher = FileReadBatcher(forwarder.forward, on_forwarded=log_forwarded)
        self.batcher = batcher
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = now_ms,
    ) -> "RelayPipeline":
        forwarder = SinkForwarder(
            settings.sink_url,
            timeout_seconds=settings.sink_timeout_seconds,
            client=client,
        )
        return cls(
            forwarder=forwarder,
            rate_limiter=RateLimiter(settings.rate_limit_ms, clock=clock),
            dedup_gate=DedupGate(settings.dedup_window_ms, clock=clock),
            batcher=FileReadBatcher(
                forwarder.forward,
                threshold=settings.file_read_batch_threshold,
                window_ms=settings.file_read_batch_window_ms,
                clock=clock,
                on_forwarded=log_forwarded,
            ),
        )

    @property
    def queued_buckets(self) -> int:
        return len(self.batcher)

    async def process_event(self, event: RelayEvent) -> EventOutcome:
        """Rate-limit by event type, dedupe by title, then forward immediately."""
        if self.rate_limiter.is_limited(event.event):
            logger.debug(f"Rate limited event type {event.event}")
            return EventOutcome(EventDisposition.RATE_LIMITED)

        if self.dedup_gate.is_duplicate(event.title):
            logger.debug(f"Deduplicated event '{event.title}'")
            return EventOutcome(EventDisposition.DEDUPLICATED)

        activity = build_event_activity(event)
        log_forwarded(activity)
        result = await self.forwarder.forward(activity)
        disposition = EventDisposition.FORWARDED if result.ok else EventDisposition.FAILED
        return EventOutcome(disposition, activity=activity, result=result)

    async def process_tool_call(self, call: RawToolCall) -> ProcessOutcome:
        """Enrich a tool call; buffer file reads, forward everything else."""
        enriched = enrich_raw_tool_call(call)
        activity = enriched.activity

        if enriched.kind == ToolKind.FILE_READ:
            await self.batcher.add(activity, enriched.file_path)
            return ProcessOutcome(accepted=True, buffered=True, forwarded=0, title=activity.title)

        result = await self.forwarder.forward(activity)
        if not result.ok:
            return ProcessOutcome(
                accepted=False,
                buffered=False,
                forwarded=0,
                title=activity.title,
                error=result.error,
            )
        log_forwarded(activity)
        return ProcessOutcome(accepted=True, buffered=False, forwarded=1, title=activity.title)

    async def shutdown(self) -> int:
        """Drain every file-read bucket, then close the sink client.

        Returns:
            Number of activities forwarded while draining.
        """
        if self._closed:
            return 0
        self._closed = True
        pending = len(self.batcher) + self.batcher.in_flight
        if pending:
            logger.info(f"Flushing {pending} file-read bucket(s) before shutdown")
        forwarded = await self.batcher.flush_all()
        await self.forwarder.aclose()
        return forwarded
