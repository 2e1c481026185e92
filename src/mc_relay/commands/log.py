"""``mc-relay log``: post one event from a shell hook."""

import json
import sys
from typing import Any

import typer

from mc_relay.activity.classifier import build_event_activity
from mc_relay.activity.models import ActivityStatus, RelayEvent, parse_relay_event
from mc_relay.client import RelayClient, relay_events_url
from mc_relay.config import RelaySettings
from mc_relay.exceptions import InvalidPayloadError

from . import console, load_settings_or_exit, print_error


def _read_stdin_payload() -> dict[str, Any]:
    try:
        payload = json.loads(sys.stdin.read())
    except ValueError as e:
        print_error(f"Invalid JSON on stdin: {e}")
        raise typer.Exit(code=1) from e
    if not isinstance(payload, dict):
        print_error("Expected a JSON object on stdin")
        raise typer.Exit(code=1)
    return payload


def log_command(
    event: str | None = None,
    title: str | None = None,
    description: str | None = None,
    tool: str | None = None,
    status: str = ActivityStatus.SUCCESS.value,
    direct: bool = False,
    use_stdin: bool = False,
) -> None:
    """Send one RelayEvent to the relay (or, with ``direct``, to the sink).

    Exits 0 iff the reply carries ``ok: true``.
    """
    settings = load_settings_or_exit(RelaySettings, None)

    if use_stdin:
        payload = _read_stdin_payload()
        relay_event: RelayEvent | dict[str, Any] = payload
    else:
        if not event or not title:
            print_error("--event and --title are required (or use --stdin)")
            raise typer.Exit(code=1)
        relay_event = RelayEvent(
            event=event,
            title=title,
            tool=tool,
            description=description,
            status=ActivityStatus.coerce(status, ActivityStatus.SUCCESS),
        )

    with RelayClient(
        relay_url=relay_events_url(settings.host, settings.port),
        sink_url=settings.sink_url,
    ) as client:
        if direct:
            if isinstance(relay_event, dict):
                try:
                    relay_event = parse_relay_event(relay_event)
                except InvalidPayloadError as e:
                    print_error(e.message)
                    raise typer.Exit(code=1) from e
            result = client.log_direct(build_event_activity(relay_event))
        else:
            result = client.log_activity(relay_event)

    console.print_json(data=result)
    if result.get("ok") is not True:
        raise typer.Exit(code=1)
