"""Pytest configuration and fixtures for mc-relay tests."""

import json
import logging
from collections.abc import Iterator

import httpx
import pytest

from mc_relay.constants import ACTIVITY_TRAIL_LOGGER, LOGGER_ROOT

# Fixed epoch (2023-11-14T22:13:20Z) so dedup keys and day windows are stable
BASE_TIME_MS = 1_700_000_000_000.0


class FakeClock:
    """Epoch-milliseconds clock that only moves when told to."""

    def __init__(self, start: float = BASE_TIME_MS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class SinkRecorder:
    """``httpx.MockTransport`` handler standing in for the activity store.

    Successful posts are recorded and answered with ``{"ok": true, "id": ...}``.
    Attempt numbers listed in ``fail_attempts`` (0-based) get a 500 and are
    not recorded.
    """

    def __init__(self) -> None:
        self.posted: list[dict] = []
        self.attempts = 0
        self.fail_attempts: set[int] = set()
        self.fail_all = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        attempt = self.attempts
        self.attempts += 1
        if self.fail_all or attempt in self.fail_attempts:
            return httpx.Response(500, text="store unavailable")

        self.posted.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "id": f"act_{len(self.posted)}"})

    @property
    def titles(self) -> list[str]:
        return [activity["title"] for activity in self.posted]


class QueryRecorder:
    """``httpx.MockTransport`` handler standing in for the store's query API.

    ``rows`` are the stored activities. With ``range_supported`` off the
    range function answers with an error status, as older deployments do.
    """

    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.calls: list[tuple[str, dict]] = []
        self.range_supported = True
        self.fail_all = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        function, args = body["path"], body["args"]
        self.calls.append((function, args))
        if self.fail_all:
            return httpx.Response(503, text="unavailable")

        if function == "activities:listByTimestampRange":
            if not self.range_supported:
                return httpx.Response(
                    200, json={"status": "error", "errorMessage": "Could not find function"}
                )
            value = [row for row in self.rows if args["start"] <= row["timestamp"] <= args["end"]]
        else:
            value = sorted(self.rows, key=lambda row: row["timestamp"], reverse=True)
            value = value[: args["limit"]]
        return httpx.Response(200, json={"status": "success", "value": value})

    @property
    def functions(self) -> list[str]:
        return [function for function, _ in self.calls]


@pytest.fixture
def anyio_backend():
    """Restrict anyio tests to asyncio backend (trio is not installed)."""
    return "asyncio"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink_recorder() -> SinkRecorder:
    return SinkRecorder()


@pytest.fixture
def sink_transport(sink_recorder: SinkRecorder) -> httpx.MockTransport:
    return httpx.MockTransport(sink_recorder)


@pytest.fixture
def query_recorder() -> QueryRecorder:
    return QueryRecorder()


@pytest.fixture
def query_transport(query_recorder: QueryRecorder) -> httpx.MockTransport:
    return httpx.MockTransport(query_recorder)


@pytest.fixture(autouse=True)
def restore_package_logger() -> Iterator[None]:
    """Undo configure_logging() so caplog keeps seeing mc_relay records."""
    yield
    package_logger = logging.getLogger(LOGGER_ROOT)
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
    logging.getLogger(ACTIVITY_TRAIL_LOGGER).setLevel(logging.NOTSET)
