# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Shared helper functions for inbound adapters.

Contains app-state access and the Anthropic error body used by routes,
middleware and exception handlers alike.
"""

from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from localbridge.application.admission_queue import AdmissionQueue
from localbridge.application.message_service import MessageService
from localbridge.ports.outbound import ChatBackendPort


@dataclass
class BridgeState:
    """Components built by the app lifespan, stored on ``app.state.bridge``."""

    queue: AdmissionQueue
    backend: ChatBackendPort
    service: MessageService
    timeout_ms: int


def get_bridge_state(request: Request) -> BridgeState:
    """Safely get bridge state from request, raising clear error if not initialized.

    Raises:
        HTTPException: 503 if the lifespan has not populated app state yet.
    """
    state = getattr(request.app.state, "bridge", None)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server is still initializing. Please retry in a few seconds.",
        )
    return state


def client_ip(request: Request) -> str:
    """Best-effort client address for per-client accounting."""
    return request.client.host if request.client else "unknown"


def error_body(error_type: str, message: str) -> dict[str, Any]:
    """Anthropic error format: {"type": "error", "error": {"type", "message"}}."""
    return {"type": "error", "error": {"type": error_type, "message": message}}


def error_response(
    status_code: int,
    error_type: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(error_type, message),
        headers=headers,
    )
