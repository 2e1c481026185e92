"""Live relay pipeline: flood guards, file-read batching and sink forwarding."""

from mc_relay.relay.batcher import FileReadBatcher, FileReadBucket, safe_directory
from mc_relay.relay.guards import DedupGate, RateLimiter
from mc_relay.relay.pipeline import (
    EventDisposition,
    EventOutcome,
    ProcessOutcome,
    RelayPipeline,
)
from mc_relay.relay.scheduler import DelayedTask
from mc_relay.relay.sink import ForwardResult, SinkClient, SinkForwarder, parse_sink_response

__all__ = [
    "DedupGate",
    "DelayedTask",
    "EventDisposition",
    "EventOutcome",
    "FileReadBatcher",
    "FileReadBucket",
    "ForwardResult",
    "ProcessOutcome",
    "RateLimiter",
    "RelayPipeline",
    "SinkClient",
    "SinkForwarder",
    "parse_sink_response",
    "safe_directory",
]
