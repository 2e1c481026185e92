"""Tool-call classification and activity enrichment.

``enrich_raw_tool_call`` is the single entry point used by both the live
relay and the backfill scanner:

1. ``classify_tool`` maps the tool name to a ``ToolKind`` via an ordered
   rule list (first match wins).
2. ``infer_status`` derives success/error/pending from the result payload.
3. ``titles.build_title`` produces the human title and description.
4. ``infer_importance`` scores the activity for the file-read batcher.
5. ``activity_type_for`` maps the kind to the user-facing ActivityType.

The enrichment never raises: missing fields degrade to generic labels.
"""

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mc_relay.activity.models import (
    ActivityRecord,
    ActivityStatus,
    ActivityType,
    EnrichedActivity,
    EventType,
    RawToolCall,
    RelayEvent,
    ToolKind,
    get_number,
    get_string,
    is_finite_number,
    is_record,
)
from mc_relay.activity.titles import build_title, extract_path
from mc_relay.constants import (
    FIELD_DURATION,
    FIELD_IMPORTANCE,
    FIELD_SESSION_KEY,
    FIELD_TOOL,
    IMPORTANCE_ACTION,
    IMPORTANCE_DEFAULT,
    IMPORTANCE_ERROR,
    IMPORTANCE_FILE_READ,
    IMPORTANCE_MESSAGE,
)


@dataclass(frozen=True)
class ToolRule:
    """One classification rule: a predicate over the lowercased tool name."""

    kind: ToolKind
    matches: Callable[[str], bool]
    description: str = ""


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda name: any(needle in name for needle in needles)


def _equals(*names: str) -> Callable[[str], bool]:
    return lambda name: name in names


def _regex(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern)
    return lambda name: compiled.search(name) is not None


def _any_of(*predicates: Callable[[str], bool]) -> Callable[[str], bool]:
    return lambda name: any(predicate(name) for predicate in predicates)


TOOL_RULES: tuple[ToolRule, ...] = (
    ToolRule(
        ToolKind.EXEC,
        _any_of(_equals("exec_command", "write_stdin"), _contains("exec", "bash", "shell")),
        "shell execution",
    ),
    ToolRule(ToolKind.MESSAGE, _contains("message", "discord", "telegram", "slack"), "messaging"),
    ToolRule(ToolKind.WEB_FETCH, _contains("web_fetch", "webfetch"), "web fetch"),
    ToolRule(
        ToolKind.BROWSER,
        _contains("browser", "open_url", "navigate", "click"),
        "browser automation",
    ),
    ToolRule(ToolKind.CRON, _contains("cron", "schedule"), "scheduling"),
    ToolRule(
        ToolKind.SESSIONS_SPAWN,
        _contains("sessions_spawn", "spawn_session", "subagent"),
        "sub-agent spawn",
    ),
    ToolRule(
        ToolKind.FILE_READ,
        _any_of(
            _regex(r"(^|_)(read|cat|view|open)(_)?file"),
            _contains("readfile"),
            _equals("read"),
        ),
        "file read",
    ),
    ToolRule(
        ToolKind.FILE_MODIFY,
        _any_of(
            _regex(r"(^|_)(write|edit|patch|modify|update|save)(_)?file"),
            _contains("apply_patch", "writefile"),
            _equals("write", "edit"),
        ),
        "file modification",
    ),
)

KIND_TO_ACTIVITY_TYPE: dict[ToolKind, ActivityType] = {
    ToolKind.EXEC: ActivityType.CODE,
    ToolKind.MESSAGE: ActivityType.MESSAGE,
    ToolKind.FILE_READ: ActivityType.FILE,
    ToolKind.FILE_MODIFY: ActivityType.FILE,
    ToolKind.BROWSER: ActivityType.BROWSER,
    ToolKind.CRON: ActivityType.CRON,
    ToolKind.WEB_FETCH: ActivityType.SEARCH,
    ToolKind.SESSIONS_SPAWN: ActivityType.SYSTEM,
    ToolKind.UNKNOWN: ActivityType.SYSTEM,
}

EVENT_TO_ACTIVITY_TYPE: dict[str, ActivityType] = {
    EventType.TOOL_CALL.value: ActivityType.SYSTEM,
    EventType.CRON_FIRE.value: ActivityType.CRON,
    EventType.MESSAGE_SENT.value: ActivityType.MESSAGE,
    EventType.FILE_CHANGED.value: ActivityType.FILE,
    EventType.ERROR.value: ActivityType.SYSTEM,
}


def now_ms() -> float:
    return time.time() * 1000


def classify_tool(tool: str, rules: tuple[ToolRule, ...] = TOOL_RULES) -> ToolKind:
    """Return the kind of the first rule matching the lowercased tool name."""
    normalized = tool.lower()
    for rule in rules:
        if rule.matches(normalized):
            return rule.kind
    return ToolKind.UNKNOWN


def infer_status(result: dict[str, Any] | None) -> ActivityStatus:
    """Derive the activity status from a tool result payload.

    Order: explicit ``status`` field, error markers, ``ok``/``success`` false,
    non-zero ``exitCode``/``code``, then the nested ``details`` object.
    """
    if not result:
        return ActivityStatus.SUCCESS

    explicit = ActivityStatus.coerce(get_string(result, "status"))
    if explicit is not None:
        return explicit

    if result.get("error") or result.get("errorMessage") or result.get("isError") is True:
        return ActivityStatus.ERROR

    if result.get("ok") is False or result.get("success") is False:
        return ActivityStatus.ERROR

    exit_code = get_number(result, "exitCode", "code")
    if exit_code is not None and exit_code != 0:
        return ActivityStatus.ERROR

    details = result.get("details")
    if is_record(details):
        return infer_status(details)

    return ActivityStatus.SUCCESS


def infer_importance(kind: ToolKind, status: ActivityStatus) -> int:
    if status == ActivityStatus.ERROR:
        return IMPORTANCE_ERROR
    if kind == ToolKind.FILE_READ:
        return IMPORTANCE_FILE_READ
    if kind == ToolKind.MESSAGE:
        return IMPORTANCE_MESSAGE
    if kind in (ToolKind.EXEC, ToolKind.SESSIONS_SPAWN):
        return IMPORTANCE_ACTION
    return IMPORTANCE_DEFAULT


def activity_type_for(kind: ToolKind) -> ActivityType:
    return KIND_TO_ACTIVITY_TYPE.get(kind, ActivityType.SYSTEM)


def tool_to_activity_type(tool: str) -> ActivityType:
    return activity_type_for(classify_tool(tool))


def enrich_raw_tool_call(call: RawToolCall) -> EnrichedActivity:
    """Classify and describe a raw tool call.

    Args:
        call: The tool invocation. ``params`` may be empty; ``result`` may be None.

    Returns:
        EnrichedActivity with the activity record, its ToolKind and any file
        path found in the params.
    """
    kind = classify_tool(call.tool)
    status = infer_status(call.result)
    file_path = extract_path(call.params)
    title, description = build_title(kind, call, file_path)

    metadata: dict[str, Any] = {
        FIELD_IMPORTANCE: infer_importance(kind, status),
        FIELD_TOOL: call.tool,
    }
    if is_finite_number(call.duration):
        metadata[FIELD_DURATION] = call.duration
    if call.session_key:
        metadata[FIELD_SESSION_KEY] = call.session_key

    timestamp = call.timestamp if is_finite_number(call.timestamp) else now_ms()
    activity = ActivityRecord(
        type=activity_type_for(kind),
        title=title,
        description=description,
        status=status,
        metadata=metadata,
        timestamp=timestamp,
    )
    return EnrichedActivity(activity=activity, kind=kind, file_path=file_path)


def event_to_activity_type(event: RelayEvent) -> ActivityType:
    """Activity type for a ``/events`` payload; tool calls are classified by tool name."""
    if event.event == EventType.TOOL_CALL.value and event.tool:
        return tool_to_activity_type(event.tool)
    return EVENT_TO_ACTIVITY_TYPE.get(event.event, ActivityType.SYSTEM)


def build_event_activity(event: RelayEvent, timestamp: float | None = None) -> ActivityRecord:
    """Build the activity for a simple webhook event (no tool enrichment).

    Caller metadata is kept; ``importance`` and ``tool`` are always set, and
    ``duration``/``sessionKey`` are only carried when well-typed.
    """
    status = event.status or ActivityStatus.SUCCESS
    metadata: dict[str, Any] = dict(event.metadata)
    is_error = status == ActivityStatus.ERROR
    metadata[FIELD_IMPORTANCE] = IMPORTANCE_ERROR if is_error else IMPORTANCE_DEFAULT
    metadata[FIELD_TOOL] = event.tool or event.event
    metadata[FIELD_DURATION] = get_number(event.metadata, FIELD_DURATION)
    metadata[FIELD_SESSION_KEY] = get_string(event.metadata, FIELD_SESSION_KEY)

    return ActivityRecord(
        type=event_to_activity_type(event),
        title=event.title,
        description=event.description,
        status=status,
        metadata=metadata,
        timestamp=timestamp if timestamp is not None else now_ms(),
    )


def build_activity_dedup_key(timestamp: float, tool: str | None, title: str) -> str:
    """Exact identity of an activity: ``timestamp|tool(lowercased)|title``."""
    return f"{_format_timestamp(timestamp)}|{(tool or '').strip().lower()}|{title.strip()}"


def activity_dedup_key(activity: ActivityRecord) -> str:
    return build_activity_dedup_key(activity.timestamp, activity.tool, activity.title)


def _format_timestamp(timestamp: float) -> str:
    # 1700000000000.0 and 1700000000000 must produce the same key
    if isinstance(timestamp, float) and timestamp.is_integer():
        return str(int(timestamp))
    return str(timestamp)
