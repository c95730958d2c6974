# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Rate limiting middleware for API requests.

Per-client-IP sliding window. Returns 429 Too Many Requests with a
Retry-After header when a client exceeds its budget.
"""

import asyncio
import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable
from typing import ClassVar

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from localbridge.adapters.inbound.adapter_helpers import client_ip, error_response

logger = logging.getLogger(__name__)


class RateLimiter(BaseHTTPMiddleware):
    """Middleware for rate limiting API requests per client address.

    Example:
        app.add_middleware(RateLimiter, requests_per_window=100, window_size_seconds=60)
    """

    # Monitoring endpoints are never limited
    EXEMPT_PATHS: ClassVar[set[str]] = {"/", "/health", "/metrics"}

    def __init__(
        self,
        app,
        requests_per_window: int = 100,
        window_size_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            app: FastAPI application instance
            requests_per_window: Max requests per client per window
            window_size_seconds: Size of sliding window in seconds
            clock: Time source (seconds); injectable for tests
        """
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_size_seconds = window_size_seconds
        self._clock = clock

        # client address -> timestamps of accepted requests inside the window
        self._client_requests: dict[str, deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

        self._cleanup_counter = 0
        self._cleanup_interval = 100

        logger.info(
            f"Rate limiter enabled: {requests_per_window} req per "
            f"{window_size_seconds}s per client"
        )

    def _clean_old_requests(self, requests: deque[float], now: float) -> None:
        window_start = now - self.window_size_seconds
        while requests and requests[0] <= window_start:
            requests.popleft()

    def _cleanup_stale_clients(self, now: float) -> int:
        """Remove clients with no requests inside the window.

        Returns:
            Number of stale entries removed
        """
        stale = []
        for client, requests in self._client_requests.items():
            self._clean_old_requests(requests, now)
            if not requests:
                stale.append(client)
        for client in stale:
            del self._client_requests[client]
        if stale:
            logger.debug(f"Cleaned up {len(stale)} stale rate limit entries")
        return len(stale)

    def check(self, client: str, now: float) -> tuple[bool, int]:
        """Record a request for ``client`` if it fits the window.

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        requests = self._client_requests[client]
        self._clean_old_requests(requests, now)

        if len(requests) >= self.requests_per_window:
            retry_after = requests[0] + self.window_size_seconds - now
            return False, max(1, int(retry_after))

        requests.append(now)

        self._cleanup_counter += 1
        if self._cleanup_counter >= self._cleanup_interval:
            self._cleanup_counter = 0
            self._cleanup_stale_clients(now)
        return True, 0

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client = client_ip(request)
        async with self._lock:
            allowed, retry_after = self.check(client, self._clock())

        if not allowed:
            logger.warning(
                f"{request.method} {request.url.path} - Rate limit exceeded for {client}"
            )
            return error_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "rate_limit_error",
                f"Rate limit exceeded. Retry after {retry_after}s.",
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
