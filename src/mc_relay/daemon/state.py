"""Relay daemon state container.

Routes reach the pipeline through ``get_state()`` rather than module-level
globals, so tests can reset everything with ``reset_state()``.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mc_relay.config import RelaySettings

if TYPE_CHECKING:
    import httpx

    from mc_relay.relay.pipeline import RelayPipeline


@dataclass
class RelayState:
    """Mutable state of a running relay daemon.

    Attributes:
        settings: Effective relay settings.
        pipeline: The live pipeline, built in the app lifespan.
        sink_client: Optional injected HTTP client for the sink (tests).
        clock: Optional injected epoch-ms clock (tests).
        start_time: Epoch seconds when the lifespan started.
    """

    settings: RelaySettings = field(default_factory=RelaySettings)
    pipeline: "RelayPipeline | None" = None
    sink_client: "httpx.AsyncClient | None" = None
    clock: Callable[[], float] | None = None
    start_time: float | None = None

    def initialize(self) -> None:
        self.start_time = time.time()

    @property
    def uptime_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.time() - self.start_time

    def reset(self) -> None:
        """Reset all state to defaults."""
        self.settings = RelaySettings()
        self.pipeline = None
        self.sink_client = None
        self.clock = None
        self.start_time = None


relay_state = RelayState()


def get_state() -> RelayState:
    """Get the global relay state."""
    return relay_state


def reset_state() -> None:
    """Reset the global relay state.

    Useful for testing.
    """
    relay_state.reset()
