"""Human-readable titles and descriptions for classified tool calls.

Each builder takes the raw call (and the extracted file path where relevant)
and returns ``(title, description)``. Missing parameters degrade to generic
labels; nothing here raises.
"""

import re
from collections.abc import Callable
from urllib.parse import urlparse

from mc_relay.activity.models import RawToolCall, ToolKind, get_string
from mc_relay.constants import (
    COMMAND_TITLE_MAX_LENGTH,
    MESSAGE_PREVIEW_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    TRUNCATION_SUFFIX,
)

TitleParts = tuple[str, str | None]

PATH_PARAM_KEYS = ("path", "filePath", "filepath", "file", "filename", "target", "source", "uri")
COMMAND_PARAM_KEYS = ("cmd", "command", "script", "chars", "input")

# (pattern on the lowercased command, title), first match wins
EXEC_COMMAND_TITLES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^git\s+push\b"), "Pushed code to GitHub"),
    (re.compile(r"^git\s+pull\b"), "Pulled latest code changes"),
    (re.compile(r"^git\s+commit\b"), "Committed code changes"),
    (re.compile(r"^(npm|pnpm|yarn)\s+install\b"), "Installed project dependencies"),
    (re.compile(r"^(npm|pnpm|yarn)\s+(test|run\s+test)\b"), "Ran test suite"),
    (re.compile(r"^pytest\b"), "Ran test suite"),
    (re.compile(r"^(npm|pnpm|yarn)\s+(run\s+)?build\b"), "Built project"),
)

MESSAGE_PLATFORMS = (("discord", "Discord"), ("telegram", "Telegram"), ("slack", "Slack"))


def truncate(value: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX


def extract_domain(raw_url: str) -> str:
    """Hostname of ``raw_url``, or the input unchanged when it is not a URL."""
    try:
        hostname = urlparse(raw_url).hostname
    except ValueError:
        return raw_url
    return hostname or raw_url


def extract_path(params: dict) -> str | None:
    return get_string(params, *PATH_PARAM_KEYS)


def summarize_exec_command(command: str) -> TitleParts:
    """Title well-known commands; anything else becomes ``Ran command: ...``."""
    normalized = command.strip()
    lower = normalized.lower()
    for pattern, title in EXEC_COMMAND_TITLES:
        if pattern.search(lower):
            return title, f"Command: {normalized}"
    return f"Ran command: {truncate(normalized, COMMAND_TITLE_MAX_LENGTH)}", None


def _exec_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    command = get_string(call.params, *COMMAND_PARAM_KEYS)
    if not command:
        return "Executed command", None
    return summarize_exec_command(command)


def _message_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    tool = call.tool.lower()
    platform_from_tool = next((label for key, label in MESSAGE_PLATFORMS if key in tool), None)
    platform = get_string(call.params, "platform", "provider", "service") or platform_from_tool
    label = platform[0].upper() + platform[1:] if platform else "destination"

    channel = get_string(call.params, "channel", "chat", "chatId", "room", "thread")
    title = f"Sent message to {label} ({channel})" if channel else f"Sent message to {label}"

    preview = get_string(call.params, "text", "content", "message")
    description = (
        f"Message preview: {truncate(preview, MESSAGE_PREVIEW_MAX_LENGTH)}" if preview else None
    )
    return title, description


def _file_read_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    title = f"Read file: {file_path or 'unknown'}"
    return title, f"Opened {file_path}" if file_path else "Read file contents"


def _file_modify_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    title = f"Modified file: {file_path or 'unknown'}"
    return title, f"Updated {file_path}" if file_path else "Modified file contents"


def _browser_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    url = get_string(call.params, "url", "href")
    action = get_string(call.params, "action", "command", "operation")
    title = f"Browsed: {url or action or 'browser action'}"
    return title, f"Action: {action}" if action and url else None


def _cron_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    job = get_string(call.params, "name", "job", "task", "id") or "unnamed"
    action = (get_string(call.params, "action", "operation") or "schedule").lower()
    if "update" in action or "edit" in action:
        title = f"Updated cron job: {job}"
    else:
        title = f"Scheduled cron job: {job}"
    schedule = get_string(call.params, "schedule", "cron", "expression")
    return title, f"Schedule: {schedule}" if schedule else None


def _web_fetch_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    url = get_string(call.params, "url", "href", "target") or "unknown"
    return f"Fetched webpage: {extract_domain(url)}", f"URL: {url}"


def _sessions_spawn_title(call: RawToolCall, file_path: str | None) -> TitleParts:
    task = get_string(call.params, "task", "summary", "prompt", "description") or "unspecified task"
    return f"Spawned sub-agent: {truncate(task, COMMAND_TITLE_MAX_LENGTH)}", None


TITLE_BUILDERS: dict[ToolKind, Callable[[RawToolCall, str | None], TitleParts]] = {
    ToolKind.EXEC: _exec_title,
    ToolKind.MESSAGE: _message_title,
    ToolKind.FILE_READ: _file_read_title,
    ToolKind.FILE_MODIFY: _file_modify_title,
    ToolKind.BROWSER: _browser_title,
    ToolKind.CRON: _cron_title,
    ToolKind.WEB_FETCH: _web_fetch_title,
    ToolKind.SESSIONS_SPAWN: _sessions_spawn_title,
}


def build_title(kind: ToolKind, call: RawToolCall, file_path: str | None) -> TitleParts:
    """Title and optional description for ``call``; unknown kinds get ``Ran tool: <name>``."""
    builder = TITLE_BUILDERS.get(kind)
    if builder is None:
        return f"Ran tool: {call.tool}", None
    return builder(call, file_path)
