# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Metrics collection middleware for Prometheus."""

import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from localbridge.adapters.inbound.metrics import request_duration_seconds, request_total


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests and observes latency by method, path and status.

    Example:
        app.add_middleware(RequestMetricsMiddleware, skip_paths={"/metrics"})
    """

    def __init__(self, app, skip_paths: set[str] | None = None):
        super().__init__(app)
        self.skip_paths = skip_paths or set()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        method, path = request.method, request.url.path
        start_time = time.perf_counter()
        status_code = "500"  # unhandled exception
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            request_duration_seconds.labels(method=method, path=path).observe(
                time.perf_counter() - start_time
            )
            request_total.labels(method=method, path=path, status_code=status_code).inc()
