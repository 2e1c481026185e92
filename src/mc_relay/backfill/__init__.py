"""Offline replay of agent transcripts into the activity store."""

from mc_relay.backfill.dedupe import QueryClient, RemoteDedupe
from mc_relay.backfill.discovery import discover_transcripts
from mc_relay.backfill.scanner import (
    BackfillReport,
    BackfillScanner,
    ProcessStats,
    run_backfill,
)
from mc_relay.backfill.state import BackfillState, FileState, load_state, save_state

__all__ = [
    "BackfillReport",
    "BackfillScanner",
    "BackfillState",
    "FileState",
    "ProcessStats",
    "QueryClient",
    "RemoteDedupe",
    "discover_transcripts",
    "load_state",
    "run_backfill",
    "save_state",
]
