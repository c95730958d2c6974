# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Authentication middleware for the shared bearer secret.

Clients present the secret as ``Authorization: Bearer <secret>``; the
``x-api-key`` header (what Anthropic SDKs send) is accepted too. Requests
without a matching secret get 401 before the body is read, so they are
never parsed or enqueued.
"""

import logging
import secrets
from collections.abc import Callable
from typing import ClassVar

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from localbridge.adapters.inbound.adapter_helpers import error_response

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_credential(request: Request) -> str | None:
    """Return the presented secret, or None when no credential header is set."""
    authorization = request.headers.get("authorization", "")
    if authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX) :].strip()
    return request.headers.get("x-api-key") or None


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware for bearer-token authentication.

    Example:
        app.add_middleware(AuthenticationMiddleware, bearer_token="local")
    """

    # Endpoints that don't require authentication
    PUBLIC_ENDPOINTS: ClassVar[set[str]] = {
        "/",
        "/health",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
    }

    def __init__(self, app, bearer_token: str):
        """Initialize authentication middleware.

        Args:
            app: FastAPI application instance
            bearer_token: The shared secret clients must present
        """
        super().__init__(app)
        if not bearer_token:
            raise ValueError("bearer_token must not be empty")
        self._bearer_token = bearer_token
        logger.info("Authentication enabled (bearer token)")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.PUBLIC_ENDPOINTS or request.method == "OPTIONS":
            return await call_next(request)

        credential = extract_credential(request)
        if credential is None:
            logger.warning(f"{request.method} {request.url.path} - Missing credentials")
            return error_response(
                status.HTTP_401_UNAUTHORIZED,
                "authentication_error",
                "Invalid authentication credentials",
            )

        if not secrets.compare_digest(credential.encode(), self._bearer_token.encode()):
            logger.warning(f"{request.method} {request.url.path} - Invalid credentials")
            return error_response(
                status.HTTP_401_UNAUTHORIZED,
                "authentication_error",
                "Invalid authentication credentials",
            )

        logger.debug(f"{request.method} {request.url.path} - Authenticated")
        return await call_next(request)
