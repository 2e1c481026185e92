"""Remote deduplication against activities already in the store.

The store exposes a JSON query API (``POST <base>/api/query``). For each UTC
calendar day an activity falls on, the day's stored activities are fetched
once and turned into a set of dedup keys; later lookups for the same day hit
the cache. Keys of activities sent during the run are added to the cached
set, so a single run never needs to re-query a day.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from mc_relay.activity.classifier import activity_dedup_key, build_activity_dedup_key
from mc_relay.activity.models import ActivityRecord, is_finite_number, is_record
from mc_relay.constants import (
    DAY_MS,
    DEFAULT_FALLBACK_QUERY_LIMIT,
    DEFAULT_RANGE_QUERY_LIMIT,
    FIELD_TOOL,
    QUERY_API_PATH,
    QUERY_LIST_FUNCTION,
    QUERY_RANGE_FUNCTION,
    QUERY_STATUS_SUCCESS,
)
from mc_relay.exceptions import RemoteQueryError

logger = logging.getLogger(__name__)


def day_start_ms(timestamp: float) -> int:
    """Start of the UTC calendar day containing ``timestamp`` (epoch ms)."""
    moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(start.timestamp() * 1000)


class QueryClient:
    """Minimal client for the store's HTTP query API.

    Attributes:
        base_url: Deployment URL; ``/api/query`` is appended.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def query(self, function: str, args: dict[str, Any]) -> Any:
        """Run a query function and return its value.

        Raises:
            RemoteQueryError: On transport failure, non-2xx reply, or an
                error status in the reply body.
        """
        body = {"path": function, "args": args, "format": "json"}
        try:
            response = self._client.post(f"{self.base_url}{QUERY_API_PATH}", json=body)
        except httpx.HTTPError as e:
            raise RemoteQueryError(str(e) or e.__class__.__name__, function=function) from e

        if response.status_code != 200:
            raise RemoteQueryError(
                f"HTTP {response.status_code}: {response.text}",
                function=function,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteQueryError(f"Invalid JSON reply: {e}", function=function) from e

        if not is_record(data) or data.get("status") != QUERY_STATUS_SUCCESS:
            message = data.get("errorMessage") if is_record(data) else None
            raise RemoteQueryError(str(message or "Query failed"), function=function)
        return data.get("value")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def _row_key(row: Any) -> str | None:
    if not is_record(row):
        return None
    timestamp = row.get("timestamp")
    title = row.get("title")
    if not is_finite_number(timestamp) or not isinstance(title, str):
        return None
    metadata = row.get("metadata")
    tool = metadata.get(FIELD_TOOL) if is_record(metadata) else None
    return build_activity_dedup_key(timestamp, tool if isinstance(tool, str) else None, title)


class RemoteDedupe:
    """Per-UTC-day cache of dedup keys for activities already stored remotely.

    The range query is tried first; if it fails, the most recent
    ``fallback_limit`` activities are fetched and filtered to the day. The
    fallback warning is logged once per instance. A failing fallback
    propagates ``RemoteQueryError``.
    """

    def __init__(
        self,
        client: QueryClient,
        range_limit: int = DEFAULT_RANGE_QUERY_LIMIT,
        fallback_limit: int = DEFAULT_FALLBACK_QUERY_LIMIT,
    ) -> None:
        self._client = client
        self._range_limit = range_limit
        self._fallback_limit = fallback_limit
        self._day_cache: dict[int, set[str]] = {}
        self._range_warning_shown = False

    @property
    def cached_days(self) -> list[int]:
        return sorted(self._day_cache)

    def _fetch_rows(self, start: int, end: int) -> list[Any]:
        try:
            rows = self._client.query(
                QUERY_RANGE_FUNCTION,
                {"start": start, "end": end, "limit": self._range_limit},
            )
            return rows if isinstance(rows, list) else []
        except RemoteQueryError as e:
            if not self._range_warning_shown:
                logger.warning(
                    f"{QUERY_RANGE_FUNCTION} unavailable, "
                    f"falling back to latest-list dedupe ({e.message})"
                )
                self._range_warning_shown = True

        rows = self._client.query(QUERY_LIST_FUNCTION, {"limit": self._fallback_limit})
        return [
            row
            for row in (rows if isinstance(rows, list) else [])
            if is_record(row)
            and is_finite_number(row.get("timestamp"))
            and start <= row["timestamp"] <= end
        ]

    def _load_day(self, timestamp: float) -> set[str]:
        start = day_start_ms(timestamp)
        cached = self._day_cache.get(start)
        if cached is not None:
            return cached

        end = start + DAY_MS - 1
        keys: set[str] = set()
        for row in self._fetch_rows(start, end):
            key = _row_key(row)
            if key is not None:
                keys.add(key)
        logger.debug(f"Loaded {len(keys)} remote activity key(s) for day starting {start}")
        self._day_cache[start] = keys
        return keys

    def has(self, activity: ActivityRecord) -> bool:
        return activity_dedup_key(activity) in self._load_day(activity.timestamp)

    def remember(self, activity: ActivityRecord) -> None:
        self._load_day(activity.timestamp).add(activity_dedup_key(activity))
