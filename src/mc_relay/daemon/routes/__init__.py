"""Route modules for the relay daemon.

- events: legacy pre-titled webhook events
- tools: raw tool calls, single and batched
- health: liveness and queued bucket count
"""

from mc_relay.daemon.routes.events import router as events_router
from mc_relay.daemon.routes.health import router as health_router
from mc_relay.daemon.routes.tools import router as tools_router

__all__ = [
    "events_router",
    "health_router",
    "tools_router",
]
