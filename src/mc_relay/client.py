"""Client for posting events to a running relay, or straight to the store.

Used by agent hooks and the ``mc-relay log`` command. Neither call raises on
transport failure; the error comes back as ``{"ok": False, "error": ...}``
so a hook never blocks or crashes the agent that invoked it.
"""

import logging
from typing import Any

import httpx

from mc_relay.activity.classifier import now_ms
from mc_relay.activity.models import ActivityRecord, RelayEvent
from mc_relay.constants import (
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    DEFAULT_SINK_URL,
    FIELD_TIMESTAMP,
    RELAY_EVENTS_PATH,
)

logger = logging.getLogger(__name__)


def relay_events_url(host: str = DEFAULT_RELAY_HOST, port: int = DEFAULT_RELAY_PORT) -> str:
    return f"http://{host}:{port}{RELAY_EVENTS_PATH}"


def event_to_payload(event: RelayEvent) -> dict[str, Any]:
    """JSON body for ``/events``; unset optional fields are omitted."""
    payload: dict[str, Any] = {"event": event.event, "title": event.title}
    if event.tool:
        payload["tool"] = event.tool
    if event.description:
        payload["description"] = event.description
    if event.status is not None:
        payload["status"] = event.status.value
    if event.metadata:
        payload["metadata"] = event.metadata
    return payload


class RelayClient:
    """Blocking client for the relay's ``/events`` endpoint and the sink.

    Attributes:
        relay_url: Full ``/events`` URL of the relay.
        sink_url: Activity-log endpoint used by ``log_direct``.
    """

    def __init__(
        self,
        relay_url: str | None = None,
        sink_url: str = DEFAULT_SINK_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.relay_url = relay_url or relay_events_url()
        self.sink_url = sink_url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def log_activity(self, event: RelayEvent | dict[str, Any]) -> dict[str, Any]:
        """Post an event to the relay and return its JSON reply.

        A dict is sent as-is, which lets ``--stdin`` forward raw documents.
        """
        payload = event if isinstance(event, dict) else event_to_payload(event)
        try:
            response = self._client.post(self.relay_url, json=payload)
            data = response.json()
        except httpx.HTTPError as e:
            return {"ok": False, "error": str(e) or e.__class__.__name__}
        except ValueError:
            return {"ok": False, "error": f"HTTP {response.status_code}"}
        if not isinstance(data, dict):
            return {"ok": False, "error": f"Unexpected reply: {data!r}"}
        return data

    def log_direct(self, activity: ActivityRecord | dict[str, Any]) -> dict[str, Any]:
        """Post an activity straight to the sink, bypassing the relay's guards."""
        payload = dict(activity) if isinstance(activity, dict) else activity.to_dict()
        if not payload.get(FIELD_TIMESTAMP):
            payload[FIELD_TIMESTAMP] = now_ms()

        try:
            response = self._client.post(self.sink_url, json=payload)
        except httpx.HTTPError as e:
            return {"ok": False, "error": str(e) or e.__class__.__name__}

        if not response.is_success:
            return {"ok": False, "error": f"HTTP {response.status_code}"}
        try:
            data = response.json()
        except ValueError:
            return {"ok": True}
        return data if isinstance(data, dict) else {"ok": True}

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
