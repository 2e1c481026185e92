"""ASGI middleware for the relay daemon."""

import json
from http import HTTPStatus

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from mc_relay.constants import DEFAULT_MAX_BODY_BYTES, ERROR_BODY_TOO_LARGE


async def _send_json_error(send: Send, status: int, error: str) -> None:
    """Send a JSON error response via raw ASGI."""
    body = json.dumps({"ok": False, "error": error}).encode()
    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ],
        }
    )
    await send({"type": "http.response.body", "body": body})


class RequestSizeLimitMiddleware:
    """Reject request bodies whose declared size exceeds ``max_bytes`` with 413.

    Requests without a ``Content-Length`` header pass through (chunked
    transfers are bounded by uvicorn's own limits).
    """

    def __init__(self, app: ASGIApp, max_bytes: int = DEFAULT_MAX_BODY_BYTES) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            try:
                if int(content_length) > self.max_bytes:
                    await _send_json_error(
                        send, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, ERROR_BODY_TOO_LARGE
                    )
                    return
            except ValueError:
                pass  # Non-numeric Content-Length, let downstream handle it

        await self.app(scope, receive, send)
