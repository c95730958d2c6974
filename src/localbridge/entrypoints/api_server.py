# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""FastAPI application factory and server setup.

This module provides the main FastAPI application with lifespan-managed
components, middleware, error handlers, and route registration.
"""

from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from localbridge import __version__
from localbridge.adapters.config.logging import configure_logging
from localbridge.adapters.config.settings import Settings, get_settings
from localbridge.adapters.inbound.adapter_helpers import BridgeState, error_response
from localbridge.adapters.inbound.anthropic_adapter import router as anthropic_router
from localbridge.adapters.inbound.auth_middleware import AuthenticationMiddleware
from localbridge.adapters.inbound.metrics import observe_queue, registry
from localbridge.adapters.inbound.metrics_middleware import RequestMetricsMiddleware
from localbridge.adapters.inbound.rate_limiter import RateLimiter
from localbridge.adapters.inbound.request_context_middleware import RequestContextMiddleware
from localbridge.adapters.inbound.request_models import HealthResponse
from localbridge.adapters.outbound.openai_backend import OpenAIChatBackend
from localbridge.application.admission_queue import AdmissionQueue
from localbridge.application.message_service import MessageService
from localbridge.domain.errors import (
    AuthenticationError,
    BackendError,
    BackendTimeoutError,
    BridgeError,
    InvalidRequestError,
    QueueFullError,
)
from localbridge.domain.services import ModelRouter

_HTTP_ERROR_TYPES = {
    status.HTTP_400_BAD_REQUEST: "invalid_request_error",
    status.HTTP_401_UNAUTHORIZED: "authentication_error",
    status.HTTP_403_FORBIDDEN: "permission_error",
    status.HTTP_404_NOT_FOUND: "not_found_error",
    status.HTTP_405_METHOD_NOT_ALLOWED: "invalid_request_error",
    status.HTTP_429_TOO_MANY_REQUESTS: "rate_limit_error",
    status.HTTP_503_SERVICE_UNAVAILABLE: "overloaded_error",
}


def build_router(settings: Settings) -> ModelRouter:
    routing = settings.routing
    return ModelRouter(
        reasoning_model=routing.reasoning_model,
        code_model=routing.code_model,
        short_model=routing.short_model,
        default_model=routing.default_model,
        short_threshold=routing.short_threshold,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager (startup/shutdown).

    Builds the single AdmissionQueue, the backend client and the
    MessageService, and stores them on ``app.state.bridge``.
    """
    logger = structlog.get_logger(__name__)
    settings: Settings = app.state.settings
    logger.info("server_starting")

    queue = AdmissionQueue(
        limit=settings.queue.max_inflight,
        max_queue_length=settings.queue.max_queue_length,
    )
    backend = OpenAIChatBackend(
        settings.backend.chat_url,
        transport=getattr(app.state, "backend_transport", None),
    )
    service = MessageService(
        queue,
        backend,
        router=build_router(settings),
        timeout_seconds=settings.backend.timeout_seconds,
        default_temperature=settings.backend.default_temperature,
        response_model=settings.routing.response_model,
    )
    app.state.bridge = BridgeState(
        queue=queue,
        backend=backend,
        service=service,
        timeout_ms=settings.backend.timeout_ms,
    )

    if not await backend.check():
        logger.warning("backend_unreachable", chat_url=settings.backend.chat_url)

    logger.info(
        "server_ready",
        backend=settings.backend.chat_url,
        timeout_ms=settings.backend.timeout_ms,
        max_inflight=queue.limit,
    )
    try:
        yield
    finally:
        logger.info("server_shutting_down", queued=queue.size, inflight=queue.running)
        dropped = queue.clear()
        await backend.aclose()
        app.state.bridge = None
        logger.info("server_shutdown_complete", dropped_jobs=dropped)


def _register_middleware(app: FastAPI, settings: Settings):
    """Register all middleware.

    Starlette runs the last-added middleware first, so execution order is:
    request context (id + access log), metrics, CORS, rate limit,
    auth, routes.
    """
    logger = structlog.get_logger(__name__)

    app.add_middleware(
        AuthenticationMiddleware,
        bearer_token=settings.secrets.bearer_token.get_secret_value(),
    )
    logger.info("middleware_registered", middleware="AuthenticationMiddleware")

    app.add_middleware(
        RateLimiter,
        requests_per_window=settings.server.rate_limit_per_client,
        window_size_seconds=settings.server.rate_limit_window_seconds,
    )
    logger.info("middleware_registered", middleware="RateLimiter")

    cors_origins_str = settings.server.cors_origins
    cors_origins = ["*"] if cors_origins_str == "*" else [
        origin.strip() for origin in cors_origins_str.split(",") if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestMetricsMiddleware, skip_paths={"/metrics"})
    logger.info("middleware_registered", middleware="RequestMetricsMiddleware")

    app.add_middleware(RequestContextMiddleware, quiet_paths={"/health", "/metrics"})
    logger.info("middleware_registered", middleware="RequestContextMiddleware")


def _register_health_endpoints(app: FastAPI):
    @app.get("/health")
    async def health(response: Response):
        """Queue depth and configured limits."""
        bridge = getattr(app.state, "bridge", None)
        if bridge is None:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {"status": "starting"}

        queue = bridge.queue
        observe_queue(queue.size, queue.inflight_count)
        return HealthResponse(
            queued=queue.size,
            inflight=queue.inflight_count,
            max_inflight=queue.limit,
            timeout_ms=bridge.timeout_ms,
        )


def _register_metrics_endpoint(app: FastAPI):
    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        bridge = getattr(app.state, "bridge", None)
        if bridge is not None:
            observe_queue(bridge.queue.size, bridge.queue.inflight_count)
        return Response(
            content=generate_latest(registry),
            media_type="text/plain; version=0.0.4",
        )


def _get_bridge_error_details(exc: BridgeError) -> tuple[int, str]:
    """Get HTTP status code and Anthropic error type for a BridgeError."""
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED, "authentication_error"
    elif isinstance(exc, InvalidRequestError):
        return status.HTTP_400_BAD_REQUEST, "invalid_request_error"
    elif isinstance(exc, QueueFullError):
        return status.HTTP_503_SERVICE_UNAVAILABLE, "overloaded_error"
    elif isinstance(exc, BackendTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT, "api_error"
    elif isinstance(exc, BackendError):
        return status.HTTP_502_BAD_GATEWAY, "api_error"
    else:
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "api_error"


def _register_error_handlers(app: FastAPI):
    logger = structlog.get_logger(__name__)

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        """Handle domain errors with appropriate status codes."""
        status_code, error_type = _get_bridge_error_details(exc)
        log_method = logger.error if status_code >= 500 else logger.warning
        log_method(
            "domain_error",
            error_type=exc.__class__.__name__,
            http_status=status_code,
            message=str(exc),
        )
        return error_response(status_code, error_type, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("validation_error", error=str(exc))
        error_messages = []
        for error in exc.errors():
            loc = ".".join(str(part) for part in error["loc"])
            error_messages.append(f"{loc}: {error['msg']}")
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "invalid_request_error",
            "; ".join(error_messages),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        error_type = _HTTP_ERROR_TYPES.get(exc.status_code, "api_error")
        return error_response(
            exc.status_code,
            error_type,
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.error(
            "unexpected_error",
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=True,
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "api_error",
            "An internal error occurred",
        )


def _register_routes(app: FastAPI):
    logger = structlog.get_logger(__name__)

    @app.get("/", status_code=status.HTTP_200_OK)
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "localbridge",
            "version": __version__,
            "endpoints": {
                "messages": "/v1/messages",
                "models": "/v1/models",
                "health": "/health",
                "metrics": "/metrics",
            },
        }

    app.include_router(anthropic_router)
    logger.info("routes_registered", router="anthropic", path="/v1/messages")


def create_app(
    settings: Settings | None = None,
    backend_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the process-wide singleton).
        backend_transport: Optional httpx transport for the backend client
            (tests pass an ``httpx.MockTransport``).
    """
    settings = settings or get_settings()

    json_output = settings.server.json_logs and settings.server.log_level != "DEBUG"
    configure_logging(log_level=settings.server.log_level, json_output=json_output)

    logger = structlog.get_logger(__name__)
    logger.info("creating_fastapi_app", version=__version__)

    app = FastAPI(
        title="localbridge",
        description="Anthropic Messages API in front of a local OpenAI-compatible model server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend_transport = backend_transport
    app.state.bridge = None

    _register_middleware(app, settings)
    _register_health_endpoints(app)
    _register_metrics_endpoint(app)
    _register_error_handlers(app)
    _register_routes(app)

    logger.info("fastapi_app_created", log_level=settings.server.log_level)
    return app
