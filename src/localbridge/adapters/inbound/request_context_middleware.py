# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Per-request context: correlation id, access log and response timing.

Every request gets an X-Request-ID (echoed from the client or generated)
bound into structlog contextvars, so the queue, service and backend log
lines of one request carry the same id.

The access log records what matters for a single-slot bridge: whether the
response streams, and the admission queue depth when the request arrived
and when its response started. An SSE handler returns as soon as headers
are ready, so for streams that point is logged as ``headers_ms`` and a
second ``stream_complete`` (or ``stream_aborted``) line carries the full
stream duration once the body is exhausted or the client goes away.
"""

import time
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# HTTP status code threshold for warning vs info logs
HTTP_ERROR_THRESHOLD = 400


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _queue_depth(request: Request) -> dict[str, int]:
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        return {}
    return {"queued": bridge.queue.size, "inflight": bridge.queue.inflight_count}


def _is_event_stream(response: Response) -> bool:
    return response.headers.get("content-type", "").startswith("text/event-stream")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlation id plus access log for every request.

    Example:
        app.add_middleware(RequestContextMiddleware, quiet_paths={"/health", "/metrics"})
    """

    def __init__(self, app, quiet_paths: set[str] | None = None):
        """Initialize request context middleware.

        Args:
            app: FastAPI application instance
            quiet_paths: Paths that get a request id but no access log
        """
        super().__init__(app)
        self.quiet_paths = quiet_paths or set()
        self._logger = structlog.get_logger(__name__)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        if request.url.path in self.quiet_paths:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        start = time.perf_counter()
        self._logger.info(
            "request_start",
            client_host=request.client.host if request.client else None,
            **_queue_depth(request),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            self._logger.error(
                "request_error",
                duration_ms=_elapsed_ms(start),
                error_type=type(exc).__name__,
                error_message=str(exc),
                exc_info=True,
            )
            raise

        elapsed = _elapsed_ms(start)
        streaming = _is_event_stream(response)
        timing: dict[str, Any] = {"headers_ms" if streaming else "duration_ms": elapsed}
        log_method = (
            self._logger.info
            if response.status_code < HTTP_ERROR_THRESHOLD
            else self._logger.warning
        )
        log_method(
            "request_complete",
            status_code=response.status_code,
            streaming=streaming,
            **timing,
            **_queue_depth(request),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = f"{elapsed:.2f}ms"
        if streaming:
            # The body is sent after dispatch returns, outside the bound contextvars.
            log = self._logger.bind(request_id=request_id, path=request.url.path)
            response.body_iterator = self._track_stream(response.body_iterator, start, log)
        return response

    @staticmethod
    async def _track_stream(
        body: AsyncIterator[Any], start: float, log: Any
    ) -> AsyncIterator[Any]:
        bytes_sent = 0
        completed = False
        try:
            async for chunk in body:
                bytes_sent += len(chunk)
                yield chunk
            completed = True
        finally:
            log.info(
                "stream_complete" if completed else "stream_aborted",
                duration_ms=_elapsed_ms(start),
                bytes_sent=bytes_sent,
            )
