"""Activity classification shared by the live relay and the backfill scanner.

Key concepts:
- RawToolCall: a tool invocation reported by the agent
- ToolKind: internal category derived from the tool name
- ActivityRecord: the typed record posted to the external store
"""

from mc_relay.activity.classifier import (
    activity_dedup_key,
    build_activity_dedup_key,
    build_event_activity,
    classify_tool,
    enrich_raw_tool_call,
    event_to_activity_type,
    infer_status,
)
from mc_relay.activity.models import (
    ActivityRecord,
    ActivityStatus,
    ActivityType,
    EnrichedActivity,
    RawToolCall,
    RelayEvent,
    ToolKind,
)

__all__ = [
    # Models
    "ActivityRecord",
    "ActivityStatus",
    "ActivityType",
    "EnrichedActivity",
    "RawToolCall",
    "RelayEvent",
    "ToolKind",
    # Classification
    "activity_dedup_key",
    "build_activity_dedup_key",
    "build_event_activity",
    "classify_tool",
    "enrich_raw_tool_call",
    "event_to_activity_type",
    "infer_status",
]
