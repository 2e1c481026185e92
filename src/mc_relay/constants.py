"""Constants for the Mission Control relay.

This module centralizes the magic strings and numbers used by the relay
daemon and the backfill scanner.

Constants are organized by domain:
- Version and network defaults
- Activity vocabulary (types, statuses, importance)
- Live-path guard windows and batching
- Wire field names
- Backfill defaults
- Logging
"""

from pathlib import Path
from typing import Final

VERSION: Final[str] = "0.3.0"

# =============================================================================
# Network Defaults
# =============================================================================

DEFAULT_RELAY_HOST: Final[str] = "127.0.0.1"
DEFAULT_RELAY_PORT: Final[int] = 3002
DEFAULT_SINK_URL: Final[str] = "https://careful-gnat-191.convex.site/activity/log"
DEFAULT_QUERY_URL: Final[str] = "https://careful-gnat-191.convex.cloud"
DEFAULT_MAX_BODY_BYTES: Final[int] = 1024 * 1024

RELAY_EVENTS_PATH: Final[str] = "/events"
RELAY_TOOLS_PATH: Final[str] = "/tools"
RELAY_BATCH_PATH: Final[str] = "/batch"
RELAY_HEALTH_PATH: Final[str] = "/health"

HEALTH_STATUS_OK: Final[str] = "ok"

# =============================================================================
# Activity Vocabulary
# =============================================================================

IMPORTANCE_ERROR: Final[int] = 5
IMPORTANCE_MESSAGE: Final[int] = 4
IMPORTANCE_ACTION: Final[int] = 3
IMPORTANCE_DEFAULT: Final[int] = 2
IMPORTANCE_FILE_READ: Final[int] = 1

TITLE_MAX_LENGTH: Final[int] = 120
COMMAND_TITLE_MAX_LENGTH: Final[int] = 90
MESSAGE_PREVIEW_MAX_LENGTH: Final[int] = 140
TRUNCATION_SUFFIX: Final[str] = "..."

UNKNOWN_TOOL_NAME: Final[str] = "unknown"
DEFAULT_SESSION_KEY: Final[str] = "global"
DEFAULT_DIRECTORY: Final[str] = "workspace"

# =============================================================================
# Live-Path Guards and Batching
# =============================================================================

DEFAULT_RATE_LIMIT_MS: Final[int] = 1000
DEFAULT_DEDUP_WINDOW_MS: Final[int] = 30_000

DEFAULT_FILE_READ_BATCH_THRESHOLD: Final[int] = 5
DEFAULT_FILE_READ_BATCH_WINDOW_MS: Final[int] = 10_000
FILE_READ_BATCH_TOOL: Final[str] = "file_read_batch"

# =============================================================================
# Wire Field Names
# =============================================================================

FIELD_EVENT: Final[str] = "event"
FIELD_TITLE: Final[str] = "title"
FIELD_TOOL: Final[str] = "tool"
FIELD_PARAMS: Final[str] = "params"
FIELD_RESULT: Final[str] = "result"
FIELD_DURATION: Final[str] = "duration"
FIELD_SESSION_KEY: Final[str] = "sessionKey"
FIELD_TIMESTAMP: Final[str] = "timestamp"
FIELD_IMPORTANCE: Final[str] = "importance"

ERROR_PAYLOAD_NOT_OBJECT: Final[str] = "Payload must be an object"
ERROR_MISSING_TOOL: Final[str] = "Missing required field: tool"
ERROR_MISSING_PARAMS: Final[str] = "Missing required field: params (object)"
ERROR_MISSING_EVENT_FIELDS: Final[str] = "Missing required fields: event, title"
ERROR_BATCH_NOT_ARRAY: Final[str] = "Payload must be an array of tool calls"
ERROR_FORWARD_FAILED: Final[str] = "Failed to forward activity"
ERROR_RATE_LIMITED: Final[str] = "Rate limited"
ERROR_INVALID_JSON: Final[str] = "Invalid JSON body"
ERROR_BODY_TOO_LARGE: Final[str] = "Request body too large"

# =============================================================================
# Backfill Defaults
# =============================================================================

BACKFILL_STATE_VERSION: Final[int] = 1
DEFAULT_BACKFILL_STATE_FILE: Final[str] = ".backfill-state.json"
DEFAULT_MAX_SCAN_DEPTH: Final[int] = 6
DEFAULT_RANGE_QUERY_LIMIT: Final[int] = 10_000
DEFAULT_FALLBACK_QUERY_LIMIT: Final[int] = 5000

TRANSCRIPT_SUFFIX: Final[str] = ".jsonl"
TRANSCRIPT_LOCK_SUFFIX: Final[str] = ".jsonl.lock"
TRANSCRIPT_DELETED_MARKER: Final[str] = ".deleted."

DEFAULT_TRANSCRIPT_DIRS: Final[tuple[Path, ...]] = (
    Path("~/.openclaw/store"),
    Path("~/.openclaw/agents"),
    Path("~/.openclaw/agents/main/sessions"),
    Path("~/.codex/sessions"),
)

# Numeric timestamps below this are seconds rather than milliseconds
EPOCH_MS_THRESHOLD: Final[int] = 1_000_000_000_000
# Timestamps outside [epoch, 9999-01-01T00:00:00Z) are treated as unparseable
MAX_TIMESTAMP_MS: Final[int] = 253_370_764_800_000
DAY_MS: Final[int] = 24 * 60 * 60 * 1000

QUERY_API_PATH: Final[str] = "/api/query"
QUERY_RANGE_FUNCTION: Final[str] = "activities:listByTimestampRange"
QUERY_LIST_FUNCTION: Final[str] = "activities:list"
QUERY_STATUS_SUCCESS: Final[str] = "success"

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL_DEBUG: Final[str] = "DEBUG"
LOG_LEVEL_INFO: Final[str] = "INFO"
LOG_LEVEL_WARNING: Final[str] = "WARNING"
LOG_LEVEL_ERROR: Final[str] = "ERROR"
VALID_LOG_LEVELS: Final[tuple[str, ...]] = (
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_INFO,
    LOG_LEVEL_WARNING,
    LOG_LEVEL_ERROR,
)

LOGGER_ROOT: Final[str] = "mc_relay"
# One line per forwarded activity
ACTIVITY_TRAIL_LOGGER: Final[str] = "mc_relay.trail"

DEFAULT_LOG_MAX_BYTES: Final[int] = 5 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT: Final[int] = 3

ENV_PREFIX_RELAY: Final[str] = "MC_RELAY_"
ENV_PREFIX_BACKFILL: Final[str] = "MC_BACKFILL_"
CONFIG_SECTION_RELAY: Final[str] = "relay"
CONFIG_SECTION_BACKFILL: Final[str] = "backfill"
