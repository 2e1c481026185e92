"""Tests for RequestSizeLimitMiddleware.

Tests cover:
- Oversized bodies rejected with 413 before reaching a route
- Bodies at the limit pass through
- Requests without a body pass through
- The relay app wires the configured limit
"""

import httpx
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from mc_relay.config import RelaySettings
from mc_relay.daemon.middleware import RequestSizeLimitMiddleware
from mc_relay.daemon.server import create_app
from mc_relay.daemon.state import reset_state


def _echo_app(max_bytes: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=max_bytes)

    @app.post("/echo")
    async def echo(request: Request) -> dict:
        return {"size": len(await request.body())}

    return app


class TestRequestSizeLimit:
    def test_oversized_body_rejected(self) -> None:
        client = TestClient(_echo_app(max_bytes=10))
        response = client.post("/echo", content=b"x" * 11)

        assert response.status_code == 413
        assert response.json() == {"ok": False, "error": "Request body too large"}

    def test_body_at_limit_allowed(self) -> None:
        client = TestClient(_echo_app(max_bytes=10))
        response = client.post("/echo", content=b"x" * 10)

        assert response.status_code == 200
        assert response.json() == {"size": 10}

    def test_get_without_body_allowed(self) -> None:
        app = _echo_app(max_bytes=1)

        @app.get("/ping")
        async def ping() -> dict:
            return {"pong": True}

        assert TestClient(app).get("/ping").status_code == 200

    def test_relay_app_applies_configured_limit(self, sink_transport) -> None:
        reset_state()
        app = create_app(
            RelaySettings(max_body_bytes=64),
            sink_client=httpx.AsyncClient(transport=sink_transport),
        )
        try:
            with TestClient(app) as client:
                response = client.post(
                    "/tools",
                    json={"tool": "bash", "params": {"command": "x" * 200}},
                )
        finally:
            reset_state()

        assert response.status_code == 413
