"""Pydantic models for the relay daemon API."""

from pydantic import BaseModel, ConfigDict, Field

from mc_relay.constants import HEALTH_STATUS_OK


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = HEALTH_STATUS_OK
    port: int
    queued_file_read_buckets: int = Field(default=0, alias="queuedFileReadBuckets")
    uptime_seconds: float = 0.0


class EventAccepted(BaseModel):
    """Reply to a forwarded ``/events`` payload."""

    ok: bool = True
    id: str | None = None
    type: str


class ToolAccepted(BaseModel):
    """Reply to an accepted ``/tools`` payload."""

    ok: bool = True
    buffered: bool
    forwarded: int
    title: str


class BatchItemError(BaseModel):
    index: int
    error: str


class BatchResponse(BaseModel):
    """Aggregate reply for ``/batch``; ``ok`` is false when any item failed."""

    ok: bool
    accepted: int = 0
    buffered: int = 0
    forwarded: int = 0
    errors: list[BatchItemError] = Field(default_factory=list)
