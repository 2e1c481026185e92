"""Forwarding of activity records to the external store.

Two flavours share one response contract:

- ``SinkForwarder`` (async) for the live relay: never raises, returns a
  ``ForwardResult`` the route turns into a 502.
- ``SinkClient`` (sync) for the sequential backfill: raises ``SinkError`` so
  the scanner can halt on the first failure.

Neither retries, backs off or queues.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from mc_relay.activity.models import ActivityRecord
from mc_relay.exceptions import SinkError

logger = logging.getLogger(__name__)


@dataclass
class ForwardResult:
    """Outcome of one POST to the sink."""

    ok: bool
    id: str | None = None
    error: str | None = None


def parse_sink_response(status_code: int, body: str) -> ForwardResult:
    """Interpret a sink reply.

    Non-2xx is a failure. A 2xx with an empty or non-JSON body is success;
    a JSON body may carry ``ok`` (default True) and ``id``.
    """
    if not 200 <= status_code < 300:
        return ForwardResult(ok=False, error=f"HTTP {status_code}")

    if not body.strip():
        return ForwardResult(ok=True)

    try:
        data: Any = json.loads(body)
    except ValueError:
        return ForwardResult(ok=True)

    if not isinstance(data, dict):
        return ForwardResult(ok=True)

    ok = data.get("ok", True) is not False
    activity_id = data.get("id")
    return ForwardResult(
        ok=ok,
        id=str(activity_id) if activity_id is not None else None,
        error=None if ok else str(data.get("error") or "Sink rejected activity"),
    )


class SinkForwarder:
    """Async poster used by the live relay.

    Owns its ``httpx.AsyncClient`` unless one is injected (tests pass a
    client backed by ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def url(self) -> str:
        return self._url

    async def forward(self, activity: ActivityRecord) -> ForwardResult:
        """POST one activity. Transport and encoding errors are reported, not raised."""
        try:
            response = await self._client.post(self._url, json=activity.to_dict())
        except httpx.HTTPError as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Failed to forward to sink: {message}")
            return ForwardResult(ok=False, error=message)
        except (TypeError, ValueError) as e:
            message = f"Activity is not JSON serializable: {e}"
            logger.error(f"Failed to forward '{activity.title}' to sink: {message}")
            return ForwardResult(ok=False, error=message)

        result = parse_sink_response(response.status_code, response.text)
        if not result.ok:
            logger.error(f"Sink error: {response.status_code} {response.text}")
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class SinkClient:
    """Blocking poster used by the backfill scanner."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def post(self, activity: ActivityRecord) -> ForwardResult:
        """POST one activity.

        Raises:
            SinkError: On transport failure, non-2xx reply, or ``ok: false`` body.
        """
        try:
            response = self._client.post(self._url, json=activity.to_dict())
        except httpx.HTTPError as e:
            raise SinkError(str(e) or e.__class__.__name__, url=self._url) from e
        except (TypeError, ValueError) as e:
            raise SinkError(f"Activity is not JSON serializable: {e}", url=self._url) from e

        if not 200 <= response.status_code < 300:
            raise SinkError(
                f"HTTP {response.status_code}: {response.text}",
                url=self._url,
                status_code=response.status_code,
            )

        result = parse_sink_response(response.status_code, response.text)
        if not result.ok:
            raise SinkError(result.error or "Sink rejected activity", url=self._url)
        return result

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SinkClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
