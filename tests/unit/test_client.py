"""Tests for RelayClient.

Tests cover:
- log_activity(): payload shape, relay replies, transport failures
- log_direct(): timestamp fill-in, non-2xx and non-JSON replies
"""

import json

import httpx
import pytest

from mc_relay.activity.models import ActivityStatus, RelayEvent
from mc_relay.client import RelayClient, event_to_payload, relay_events_url

RELAY_URL = "http://127.0.0.1:3002/events"
SINK_URL = "http://sink.test/activity/log"


class RelayStub:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _client(stub) -> RelayClient:
    return RelayClient(RELAY_URL, SINK_URL, client=httpx.Client(transport=httpx.MockTransport(stub)))


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def test_relay_events_url() -> None:
    assert relay_events_url("0.0.0.0", 4000) == "http://0.0.0.0:4000/events"


def test_event_to_payload_omits_unset_fields() -> None:
    assert event_to_payload(RelayEvent("cron_fire", "Digest")) == {
        "event": "cron_fire",
        "title": "Digest",
    }
    full = event_to_payload(
        RelayEvent("error", "Boom", tool="bash", description="d", status=ActivityStatus.ERROR)
    )
    assert full["status"] == "error"
    assert full["tool"] == "bash"


class TestLogActivity:
    def test_returns_relay_reply(self) -> None:
        stub = RelayStub(httpx.Response(200, json={"ok": True, "id": "a1", "type": "cron"}))

        result = _client(stub).log_activity(RelayEvent("cron_fire", "Digest"))

        assert result == {"ok": True, "id": "a1", "type": "cron"}
        assert str(stub.requests[0].url) == RELAY_URL
        assert stub.last_body == {"event": "cron_fire", "title": "Digest"}

    def test_dict_sent_verbatim(self) -> None:
        stub = RelayStub(httpx.Response(200, json={"ok": True}))
        payload = {"event": "tool_call", "title": "x", "extra": 1}

        _client(stub).log_activity(payload)

        assert stub.last_body == payload

    def test_error_reply_passed_through(self) -> None:
        stub = RelayStub(httpx.Response(429, json={"error": "Rate limited", "event": "cron_fire"}))

        result = _client(stub).log_activity(RelayEvent("cron_fire", "x"))

        assert result == {"error": "Rate limited", "event": "cron_fire"}

    def test_non_json_reply(self) -> None:
        stub = RelayStub(httpx.Response(500, text="Internal Server Error"))

        assert _client(stub).log_activity(RelayEvent("cron_fire", "x")) == {
            "ok": False,
            "error": "HTTP 500",
        }

    def test_relay_down(self) -> None:
        result = _client(_refuse).log_activity(RelayEvent("cron_fire", "x"))

        assert result["ok"] is False
        assert "connection refused" in result["error"]


class TestLogDirect:
    def test_fills_timestamp(self) -> None:
        stub = RelayStub(httpx.Response(200, json={"ok": True, "id": "x"}))

        result = _client(stub).log_direct({"type": "system", "title": "t", "status": "success"})

        assert result == {"ok": True, "id": "x"}
        assert str(stub.requests[0].url) == SINK_URL
        assert stub.last_body["timestamp"] > 0

    def test_keeps_existing_timestamp(self) -> None:
        stub = RelayStub(httpx.Response(200, text=""))

        result = _client(stub).log_direct({"title": "t", "timestamp": 5})

        assert result == {"ok": True}
        assert stub.last_body["timestamp"] == 5

    @pytest.mark.parametrize("status", [400, 502])
    def test_non_2xx(self, status: int) -> None:
        stub = RelayStub(httpx.Response(status, text="nope"))

        assert _client(stub).log_direct({"title": "t"}) == {"ok": False, "error": f"HTTP {status}"}

    def test_sink_down(self) -> None:
        assert _client(_refuse).log_direct({"title": "t"})["ok"] is False
