# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Anthropic Messages API adapter (POST /v1/messages, GET /v1/models).

Implements the Anthropic Messages API surface Claude-style clients use:
- Non-streaming completion (JSON envelope)
- SSE streaming (message_start ... message_stop)
- Static model listing

The body is validated here rather than by FastAPI so that a malformed
request maps to a 400 ``invalid_request_error`` and is never enqueued.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from localbridge.adapters.inbound.adapter_helpers import get_bridge_state
from localbridge.adapters.inbound.request_models import MessagesRequest, ModelInfo, ModelList
from localbridge.domain.errors import InvalidRequestError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["anthropic"])

ADVERTISED_MODELS = ("sonnet-4.5", "haiku-4.5", "opus-4.5")


def _format_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        messages.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return "; ".join(messages)


async def parse_messages_request(request: Request) -> MessagesRequest:
    """Read and validate the raw JSON body.

    Raises:
        InvalidRequestError: Body is not JSON, ``messages`` is missing or not
            an array, or a field fails validation.
    """
    try:
        raw = await request.json()
    except ValueError as e:
        raise InvalidRequestError("request body must be valid JSON") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("messages"), list):
        raise InvalidRequestError("messages field is required and must be an array")

    try:
        return MessagesRequest.model_validate(raw)
    except ValidationError as e:
        raise InvalidRequestError(_format_validation_error(e)) from e


@router.post("/messages", status_code=status.HTTP_200_OK)
async def create_message(request: Request):
    """Create a message (POST /v1/messages).

    Returns:
        EventSourceResponse (streaming) or the JSON envelope (non-streaming).
        Backend failures keep the envelope shape with status 502/504.
    """
    state = get_bridge_state(request)
    request_body = await parse_messages_request(request)
    logger.info(
        f"POST /v1/messages: model={request_body.model}, stream={request_body.stream}, "
        f"messages={len(request_body.messages)}"
    )

    if request_body.stream:
        return EventSourceResponse(state.service.stream_message(request_body))

    status_code, envelope = await state.service.create_message(request_body)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


@router.get("/models", response_model=ModelList)
async def list_models() -> ModelList:
    """List the model names clients may send (GET /v1/models)."""
    return ModelList(data=[ModelInfo(id=model_id) for model_id in ADVERTISED_MODELS])
