"""Raw tool-call ingress: ``/tools`` (single call) and ``/batch`` (array)."""

import logging
from http import HTTPStatus

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mc_relay.activity.models import parse_tool_call
from mc_relay.constants import (
    ERROR_BATCH_NOT_ARRAY,
    ERROR_FORWARD_FAILED,
    RELAY_BATCH_PATH,
    RELAY_TOOLS_PATH,
)
from mc_relay.daemon.models import BatchItemError, BatchResponse, ToolAccepted
from mc_relay.daemon.routes._utils import get_pipeline, read_json
from mc_relay.exceptions import InvalidPayloadError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tools"])


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status)


@router.post(RELAY_TOOLS_PATH)
async def post_tool_call(request: Request) -> JSONResponse:
    """Classify one raw tool call; file reads are buffered, the rest forwarded."""
    pipeline = get_pipeline()
    try:
        call = parse_tool_call(await read_json(request))
    except InvalidPayloadError as e:
        return _error(HTTPStatus.BAD_REQUEST, e.message)

    outcome = await pipeline.process_tool_call(call)
    if not outcome.accepted:
        return _error(HTTPStatus.BAD_GATEWAY, outcome.error or ERROR_FORWARD_FAILED)

    body = ToolAccepted(
        buffered=outcome.buffered,
        forwarded=outcome.forwarded,
        title=outcome.title,
    )
    return JSONResponse(body.model_dump(), status_code=HTTPStatus.ACCEPTED)


@router.post(RELAY_BATCH_PATH)
async def post_batch(request: Request) -> JSONResponse:
    """Process an array of raw tool calls sequentially, in order.

    Invalid items and forwarding failures are reported per index; the
    reply is 202 when every item was accepted, 207 otherwise.
    """
    pipeline = get_pipeline()
    try:
        payload = await read_json(request)
    except InvalidPayloadError as e:
        return _error(HTTPStatus.BAD_REQUEST, e.message)
    if not isinstance(payload, list):
        return _error(HTTPStatus.BAD_REQUEST, ERROR_BATCH_NOT_ARRAY)

    response = BatchResponse(ok=True)
    for index, item in enumerate(payload):
        try:
            call = parse_tool_call(item)
        except InvalidPayloadError as e:
            response.errors.append(BatchItemError(index=index, error=e.message))
            continue

        outcome = await pipeline.process_tool_call(call)
        if not outcome.accepted:
            error = outcome.error or ERROR_FORWARD_FAILED
            response.errors.append(BatchItemError(index=index, error=error))
            continue

        response.accepted += 1
        if outcome.buffered:
            response.buffered += 1
        response.forwarded += outcome.forwarded

    response.ok = not response.errors
    if response.errors:
        logger.warning(f"Batch of {len(payload)} had {len(response.errors)} failed item(s)")
    status = HTTPStatus.ACCEPTED if response.ok else HTTPStatus.MULTI_STATUS
    return JSONResponse(response.model_dump(), status_code=status)
