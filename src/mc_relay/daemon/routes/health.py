"""Health route for the relay daemon."""

from fastapi import APIRouter

from mc_relay.constants import RELAY_HEALTH_PATH
from mc_relay.daemon.models import HealthResponse
from mc_relay.daemon.state import get_state

router = APIRouter(tags=["health"])


@router.get(RELAY_HEALTH_PATH)
async def health_check() -> dict:
    """Liveness plus the number of file-read buckets waiting to flush."""
    state = get_state()
    queued = state.pipeline.queued_buckets if state.pipeline else 0
    response = HealthResponse(
        port=state.settings.port,
        queued_file_read_buckets=queued,
        uptime_seconds=round(state.uptime_seconds, 3),
    )
    return response.model_dump(by_alias=True)
