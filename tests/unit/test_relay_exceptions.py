"""Tests for the relay exception hierarchy."""

from pathlib import Path

import pytest

from mc_relay.exceptions import (
    BackfillError,
    ConfigurationError,
    InvalidPayloadError,
    RelayError,
    RemoteQueryError,
    SinkError,
)


@pytest.mark.parametrize(
    "error",
    [
        ConfigurationError("bad"),
        InvalidPayloadError("bad"),
        SinkError("bad"),
        RemoteQueryError("bad"),
        BackfillError("bad"),
    ],
)
def test_all_errors_are_relay_errors(error: RelayError) -> None:
    assert isinstance(error, RelayError)
    assert error.message == "bad"


def test_str_without_details() -> None:
    assert str(InvalidPayloadError("Missing required field: tool")) == "Missing required field: tool"


def test_configuration_error_details() -> None:
    error = ConfigurationError("Invalid", config_file=Path("/etc/relay.yaml"), key="relay")

    assert error.details == {"config_file": "/etc/relay.yaml", "key": "relay"}
    assert str(error) == "Invalid (config_file=/etc/relay.yaml, key=relay)"


def test_sink_error_status_code() -> None:
    error = SinkError("HTTP 500", url="http://sink", status_code=500)

    assert error.status_code == 500
    assert error.url == "http://sink"
    assert str(error) == "HTTP 500 (status_code=500)"


def test_remote_query_and_backfill_details() -> None:
    assert RemoteQueryError("down", function="activities:list").details == {
        "function": "activities:list"
    }
    assert BackfillError("unreadable", path=Path("/t.jsonl")).details == {"path": "/t.jsonl"}
    assert BackfillError("plain").details == {}
