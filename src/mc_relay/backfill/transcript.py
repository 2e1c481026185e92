"""Parsing of agent transcript lines.

Each JSONL line is one record. Only ``type == "message"`` records matter:

- assistant messages carry ``toolCall`` / ``tool_use`` content blocks,
- ``toolResult`` messages, or ``tool_result`` content blocks, carry the
  outcome keyed by the originating call id.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from mc_relay.activity.models import get_string, is_finite_number, is_record
from mc_relay.constants import EPOCH_MS_THRESHOLD, MAX_TIMESTAMP_MS

TOOL_CALL_BLOCK_TYPES = ("toolCall", "tool_use")
TOOL_RESULT_BLOCK_TYPE = "tool_result"
TOOL_RESULT_ROLE = "toolResult"


@dataclass
class PendingToolCall:
    tool: str
    params: dict[str, Any] = field(default_factory=dict)
    timestamp: float | None = None


@dataclass
class ExtractedToolCall:
    id: str
    call: PendingToolCall


@dataclass
class ExtractedToolResult:
    tool_call_id: str
    timestamp: float
    tool_name: str | None = None
    result: dict[str, Any] = field(default_factory=dict)


def to_timestamp_ms(value: Any) -> float | None:
    """Epoch milliseconds from a number (seconds are scaled) or an ISO-8601 string.

    Values that land before the epoch or past year 9999 are unparseable.
    """
    if is_finite_number(value):
        timestamp = value * 1000 if value < EPOCH_MS_THRESHOLD else value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        timestamp = parse_iso_ms(parsed)
    else:
        return None
    return timestamp if 0 <= timestamp < MAX_TIMESTAMP_MS else None


def parse_iso_ms(value: datetime) -> float:
    # Naive datetimes are read as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp() * 1000


def entry_timestamp(line: dict[str, Any]) -> float | None:
    """``message.timestamp`` wins over the line's own ``timestamp``."""
    message = line.get("message")
    if is_record(message):
        timestamp = to_timestamp_ms(message.get("timestamp"))
        if timestamp is not None:
            return timestamp
    return to_timestamp_ms(line.get("timestamp"))


def first_text(value: Any) -> str | None:
    """The string itself, or the first text item of a content list."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        for item in value:
            if is_record(item):
                text = get_string(item, "text")
                if text:
                    return text
            elif isinstance(item, str):
                return item
    return None


def parse_json_record(value: str | None) -> dict[str, Any] | None:
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        return None
    return parsed if is_record(parsed) else None


def _message(line: dict[str, Any]) -> dict[str, Any] | None:
    if line.get("type") != "message":
        return None
    message = line.get("message")
    return message if is_record(message) else None


def extract_tool_calls(line: dict[str, Any], timestamp: float) -> list[ExtractedToolCall]:
    """Tool calls an assistant message opens. Blocks without id or name are ignored."""
    message = _message(line)
    if message is None or message.get("role") != "assistant":
        return []

    content = message.get("content")
    calls: list[ExtractedToolCall] = []
    for block in content if isinstance(content, list) else []:
        if not is_record(block) or get_string(block, "type") not in TOOL_CALL_BLOCK_TYPES:
            continue

        call_id = get_string(block, "id", "tool_use_id")
        tool = get_string(block, "name", "tool", "toolName")
        if not call_id or not tool:
            continue

        params = block.get("arguments")
        if not is_record(params):
            params = block.get("input")
        calls.append(
            ExtractedToolCall(
                id=call_id,
                call=PendingToolCall(
                    tool=tool,
                    params=params if is_record(params) else {},
                    timestamp=timestamp,
                ),
            )
        )
    return calls


def extract_tool_results(line: dict[str, Any], timestamp: float) -> list[ExtractedToolResult]:
    """Tool results carried by a line, in content order."""
    message = _message(line)
    if message is None:
        return []

    if message.get("role") == TOOL_RESULT_ROLE:
        tool_call_id = get_string(message, "toolCallId", "tool_use_id", "toolUseId")
        if not tool_call_id:
            return []

        tool_name = get_string(message, "toolName", "tool")
        details = message.get("details")
        if is_record(details):
            result = dict(details)
        else:
            result = parse_json_record(first_text(message.get("content"))) or {}

        if not result.get("status") and isinstance(message.get("isError"), bool):
            result["status"] = "error" if message["isError"] else "success"
        if not result.get("tool") and tool_name:
            result["tool"] = tool_name

        return [
            ExtractedToolResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                result=result,
                timestamp=timestamp,
            )
        ]

    content = message.get("content")
    results: list[ExtractedToolResult] = []
    for block in content if isinstance(content, list) else []:
        if not is_record(block) or block.get("type") != TOOL_RESULT_BLOCK_TYPE:
            continue

        tool_call_id = get_string(block, "tool_use_id", "toolCallId", "toolUseId")
        if not tool_call_id:
            continue

        block_content = block.get("content")
        if is_record(block_content):
            result = block_content
        else:
            result = parse_json_record(first_text(block_content)) or {}

        results.append(
            ExtractedToolResult(
                tool_call_id=tool_call_id,
                tool_name=get_string(block, "name", "tool", "toolName"),
                result=result,
                timestamp=timestamp,
            )
        )
    return results
