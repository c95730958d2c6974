# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""MessageService: one Anthropic request -> one queued backend call.

Orchestrates translation, model selection, the admission queue and the
backend adapter. Backend failures never escape as exceptions to the HTTP
layer; they become an error envelope (buffered) or a complete event
sequence carrying the error text (streaming).

Architecture layer: application service.
"""

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator
from typing import Any

from localbridge.adapters.inbound.metrics import (
    backend_duration_seconds,
    backend_requests_total,
    observe_queue,
)
from localbridge.adapters.inbound.request_models import (
    MessagesRequest,
    MessagesResponse,
    TextContentBlock,
    Usage,
)
from localbridge.application.admission_queue import AdmissionQueue
from localbridge.application.streaming import SSEEvent, TranslationSession, new_message_id
from localbridge.application.translation import anthropic_to_openai, prompt_text
from localbridge.domain.errors import (
    BackendConnectionError,
    BackendError,
    BackendHTTPError,
    BackendTimeoutError,
    QueueFullError,
)
from localbridge.domain.services import DEFAULT_ROUTER, ModelRouter
from localbridge.domain.value_objects import BackendCompletion, BackendRequest
from localbridge.ports.outbound import ChatBackendPort

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_MODEL = "sonnet-4.5"

MODEL_NOT_FOUND_PATTERN = re.compile(r"model.*not found", re.IGNORECASE)
HTTP_PREFIX_PATTERN = re.compile(r"^backend_http_\d+:\s*")

_STREAM_END = object()


def describe_failure(exc: BaseException, models: tuple[str, ...] = DEFAULT_ROUTER.models) -> str:
    """Human-readable text for a failed backend call.

    Args:
        exc: The failure (usually a BackendError).
        models: Model ids to suggest pulling when the backend lacks a model.
    """
    message = str(exc)
    if MODEL_NOT_FOUND_PATTERN.search(message):
        pulls = "\n".join(f"ollama pull {model}" for model in models)
        return (
            "Local model call failed: model not found.\n\n"
            f"Pull the required models first:\n{pulls}\n\n"
            "or check the model name, then retry."
        )
    if isinstance(exc, BackendTimeoutError):
        return (
            f"Local model inference timed out (>{exc.timeout_seconds:g}s). "
            "Try a smaller model or a shorter context, or raise the timeout."
        )
    if isinstance(exc, QueueFullError):
        return f"Local model is busy: {message}. Retry shortly."
    return f"Local model call failed: {HTTP_PREFIX_PATTERN.sub('', message)}"


def _outcome(exc: BaseException) -> str:
    if isinstance(exc, BackendTimeoutError):
        return "timeout"
    if isinstance(exc, BackendHTTPError):
        return "http_error"
    if isinstance(exc, BackendConnectionError):
        return "connection_error"
    return "error"


def _record(mode: str, outcome: str, started: float) -> None:
    backend_requests_total.labels(mode=mode, outcome=outcome).inc()
    backend_duration_seconds.labels(mode=mode).observe(time.perf_counter() - started)


class MessageService:
    """Serves /v1/messages requests through the admission queue.

    Example:
        service = MessageService(queue, backend, timeout_seconds=600)
        status_code, envelope = await service.create_message(request)
    """

    def __init__(
        self,
        queue: AdmissionQueue,
        backend: ChatBackendPort,
        router: ModelRouter = DEFAULT_ROUTER,
        timeout_seconds: float = 600.0,
        default_temperature: float = 0.2,
        response_model: str = DEFAULT_RESPONSE_MODEL,
    ) -> None:
        self.queue = queue
        self.backend = backend
        self.router = router
        self.timeout_seconds = timeout_seconds
        self.default_temperature = default_temperature
        self.response_model = response_model

    def build_request(self, request: MessagesRequest, stream: bool = False) -> BackendRequest:
        """Translate and route an inbound request into a backend request."""
        messages = anthropic_to_openai(request.system, request.messages)
        model = self.router.pick(prompt_text(messages))
        temperature = (
            request.temperature if request.temperature is not None else self.default_temperature
        )
        return BackendRequest(
            model=model,
            messages=tuple(messages),
            temperature=temperature,
            stream=stream,
        )

    def describe_failure(self, exc: BaseException) -> str:
        return describe_failure(exc, self.router.models)

    def _log_route(self, backend_request: BackendRequest) -> None:
        logger.info(
            f"ROUTE -> {backend_request.model} | stream: {backend_request.stream} | "
            f"queued: {self.queue.size} | inflight: {self.queue.inflight_count}"
        )

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def create_message(self, request: MessagesRequest) -> tuple[int, MessagesResponse]:
        """Run one buffered completion.

        Returns:
            (status_code, envelope): 200 with the model text, 502 with the
            failure text, or 504 when the backend deadline expired.

        Raises:
            QueueFullError: Pending bound reached; nothing was enqueued.
        """
        model_name = request.model or self.response_model
        backend_request = self.build_request(request, stream=False)
        self._log_route(backend_request)

        future = self.queue.enqueue(lambda: self._complete(backend_request))
        observe_queue(self.queue.size, self.queue.inflight_count)
        try:
            completion = await future
        except BackendError as exc:
            status_code = 504 if isinstance(exc, BackendTimeoutError) else 502
            return status_code, self._envelope(model_name, self.describe_failure(exc))

        return 200, self._envelope(
            model_name,
            completion.content,
            Usage(input_tokens=completion.input_tokens, output_tokens=completion.output_tokens),
        )

    async def _complete(self, backend_request: BackendRequest) -> BackendCompletion:
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                completion = await self.backend.complete(backend_request)
        except TimeoutError as exc:
            logger.warning(f"Backend call timed out after {self.timeout_seconds:g}s")
            _record("complete", "timeout", started)
            raise BackendTimeoutError(self.timeout_seconds) from exc
        except BackendError as exc:
            logger.warning(f"Backend call failed: {exc}")
            _record("complete", _outcome(exc), started)
            raise
        _record("complete", "ok", started)
        return completion

    @staticmethod
    def _envelope(model: str, text: str, usage: Usage | None = None) -> MessagesResponse:
        return MessagesResponse(
            id=new_message_id(),
            content=[TextContentBlock(text=text)],
            model=model,
            stop_reason="end_turn",
            usage=usage or Usage(),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_message(self, request: MessagesRequest) -> AsyncIterator[SSEEvent]:
        """Yield Anthropic SSE events for one streamed completion.

        The backend call runs as a queued job that pushes events into a
        per-request buffer; this generator drains it. Whatever the outcome,
        the yielded sequence contains each envelope event exactly once.
        Closing the generator early (client disconnect) cancels the job,
        whether it is still waiting or already running.
        """
        session = TranslationSession(request.model or self.response_model)
        backend_request = self.build_request(request, stream=True)
        self._log_route(backend_request)
        events: asyncio.Queue[Any] = asyncio.Queue()

        async def job() -> int:
            started = time.perf_counter()
            try:
                try:
                    async with asyncio.timeout(self.timeout_seconds):
                        async for chunk in self.backend.stream(backend_request):
                            for event in session.open() + session.delta(chunk.text):
                                events.put_nowait(event)
                except TimeoutError as exc:
                    raise BackendTimeoutError(self.timeout_seconds) from exc
            except BackendError as exc:
                logger.warning(f"Backend stream failed after {session.delta_count} deltas: {exc}")
                _record("stream", _outcome(exc), started)
                for event in session.fail(self.describe_failure(exc)):
                    events.put_nowait(event)
                raise
            else:
                _record("stream", "ok", started)
                for event in session.close():
                    events.put_nowait(event)
                return session.delta_count
            finally:
                events.put_nowait(_STREAM_END)

        try:
            future = self.queue.enqueue(job)
        except QueueFullError as exc:
            for event in session.fail(self.describe_failure(exc)):
                yield event
            return
        observe_queue(self.queue.size, self.queue.inflight_count)

        try:
            while True:
                event = await events.get()
                if event is _STREAM_END:
                    break
                yield event
            try:
                await future
            except BackendError:
                # Already delivered to the client as the final delta.
                pass
        finally:
            if not future.done():
                future.cancel()

