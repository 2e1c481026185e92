"""Data models for activity classification.

These dataclasses and enums are shared by the live relay and the backfill
scanner. ``ActivityRecord.to_dict()`` is the exact JSON shape posted to the
external store.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mc_relay.constants import (
    ERROR_MISSING_EVENT_FIELDS,
    ERROR_MISSING_PARAMS,
    ERROR_MISSING_TOOL,
    ERROR_PAYLOAD_NOT_OBJECT,
    FIELD_DURATION,
    FIELD_EVENT,
    FIELD_IMPORTANCE,
    FIELD_PARAMS,
    FIELD_RESULT,
    FIELD_SESSION_KEY,
    FIELD_TIMESTAMP,
    FIELD_TITLE,
    FIELD_TOOL,
    IMPORTANCE_DEFAULT,
)
from mc_relay.exceptions import InvalidPayloadError


class ActivityType(str, Enum):
    """User-facing activity categories understood by the dashboard."""

    EMAIL = "email"
    CODE = "code"
    CRON = "cron"
    SEARCH = "search"
    MESSAGE = "message"
    FILE = "file"
    BROWSER = "browser"
    SYSTEM = "system"


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"

    @classmethod
    def coerce(cls, value: Any, default: "ActivityStatus | None" = None) -> "ActivityStatus | None":
        """Return the matching status, or ``default`` for anything unrecognized."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip())
            except ValueError:
                return default
        return default


class ToolKind(str, Enum):
    """Internal category for a raw tool invocation, before mapping to ActivityType."""

    EXEC = "exec"
    MESSAGE = "message"
    FILE_READ = "file_read"
    FILE_MODIFY = "file_modify"
    BROWSER = "browser"
    CRON = "cron"
    WEB_FETCH = "web_fetch"
    SESSIONS_SPAWN = "sessions_spawn"
    UNKNOWN = "unknown"


class EventType(str, Enum):
    """Event names accepted by the simple ``/events`` webhook."""

    TOOL_CALL = "tool_call"
    CRON_FIRE = "cron_fire"
    MESSAGE_SENT = "message_sent"
    FILE_CHANGED = "file_changed"
    ERROR = "error"


# =============================================================================
# Loose-payload helpers
# =============================================================================


def is_record(value: Any) -> bool:
    """True for JSON objects (dicts); lists and scalars are not records."""
    return isinstance(value, dict)


def get_string(obj: dict[str, Any], *keys: str) -> str | None:
    """Return the first non-blank string among ``keys``, stripped."""
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def get_number(obj: dict[str, Any], *keys: str) -> float | None:
    """Return the first finite number among ``keys``. Booleans are not numbers."""
    for key in keys:
        value = obj.get(key)
        if is_finite_number(value):
            return value
    return None


def is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


# =============================================================================
# Records
# =============================================================================


@dataclass
class ActivityRecord:
    """Canonical output unit: one typed activity destined for the store.

    ``metadata`` always carries ``importance`` and ``tool``; ``timestamp`` is
    epoch milliseconds and is always set.
    """

    type: ActivityType
    title: str
    status: ActivityStatus
    timestamp: float
    metadata: dict[str, Any] = field(default_factory=dict)
    description: str | None = None

    @property
    def tool(self) -> str | None:
        tool = self.metadata.get(FIELD_TOOL)
        return tool if isinstance(tool, str) else None

    @property
    def importance(self) -> int:
        importance = self.metadata.get(FIELD_IMPORTANCE)
        return importance if isinstance(importance, int) else IMPORTANCE_DEFAULT

    @property
    def session_key(self) -> str | None:
        session_key = self.metadata.get(FIELD_SESSION_KEY)
        return session_key if isinstance(session_key, str) else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON body posted to the sink."""
        data: dict[str, Any] = {
            "type": self.type.value,
            "title": self.title,
            "status": self.status.value,
            "metadata": {k: v for k, v in self.metadata.items() if v is not None},
            "timestamp": self.timestamp,
        }
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass
class RawToolCall:
    """A tool invocation as reported by the agent or rebuilt from a transcript."""

    tool: str
    params: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    duration: float | None = None
    session_key: str | None = None
    timestamp: float | None = None


@dataclass
class RelayEvent:
    """Legacy webhook shape: already titled, needs no tool enrichment."""

    event: str
    title: str
    tool: str | None = None
    description: str | None = None
    status: ActivityStatus | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrichedActivity:
    """Classifier output: the activity plus what the batcher needs to route it."""

    activity: ActivityRecord
    kind: ToolKind
    file_path: str | None = None


# =============================================================================
# Payload parsing
# =============================================================================


def parse_tool_call(payload: Any) -> RawToolCall:
    """Validate a ``/tools`` payload and build a RawToolCall.

    Optional fields with the wrong type are dropped rather than rejected.

    Raises:
        InvalidPayloadError: If the payload is not an object, or ``tool`` /
            ``params`` are missing.
    """
    if not is_record(payload):
        raise InvalidPayloadError(ERROR_PAYLOAD_NOT_OBJECT)

    tool = get_string(payload, FIELD_TOOL)
    if not tool:
        raise InvalidPayloadError(ERROR_MISSING_TOOL)

    params = payload.get(FIELD_PARAMS)
    if not is_record(params):
        raise InvalidPayloadError(ERROR_MISSING_PARAMS)

    call = RawToolCall(tool=tool, params=params)

    result = payload.get(FIELD_RESULT)
    if is_record(result):
        call.result = result

    duration = payload.get(FIELD_DURATION)
    if is_finite_number(duration):
        call.duration = duration

    timestamp = payload.get(FIELD_TIMESTAMP)
    if is_finite_number(timestamp):
        call.timestamp = timestamp

    call.session_key = get_string(payload, FIELD_SESSION_KEY)
    return call


def parse_relay_event(payload: Any) -> RelayEvent:
    """Validate an ``/events`` payload.

    Raises:
        InvalidPayloadError: If ``event`` or ``title`` is missing or empty.
    """
    if not is_record(payload):
        raise InvalidPayloadError(ERROR_MISSING_EVENT_FIELDS)

    event = payload.get(FIELD_EVENT)
    title = payload.get(FIELD_TITLE)
    if not isinstance(event, str) or not event or not isinstance(title, str) or not title:
        raise InvalidPayloadError(ERROR_MISSING_EVENT_FIELDS)

    metadata = payload.get("metadata")
    description = payload.get("description")
    return RelayEvent(
        event=event,
        title=title,
        tool=get_string(payload, FIELD_TOOL),
        description=description if isinstance(description, str) else None,
        status=ActivityStatus.coerce(payload.get("status")),
        metadata=dict(metadata) if is_record(metadata) else {},
    )
