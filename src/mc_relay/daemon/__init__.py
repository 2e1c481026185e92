"""HTTP ingress daemon for the relay."""

from mc_relay.daemon.server import configure_logging, create_app
from mc_relay.daemon.state import RelayState, get_state, reset_state

__all__ = [
    "RelayState",
    "configure_logging",
    "create_app",
    "get_state",
    "reset_state",
]
