# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""OpenAI-compatible chat-completions backend adapter.

Talks to a local inference server (Ollama, llama.cpp llama-server, vLLM)
over its /v1/chat/completions endpoint with httpx.

The overall per-call deadline is not enforced here: the caller wraps the
whole call in ``asyncio.timeout`` so that expiry cancels the in-flight
request (closing the connection) wherever it is suspended. The client only
bounds connection setup.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from localbridge.adapters.outbound.sse_decoder import SSEFrameDecoder
from localbridge.domain.errors import BackendConnectionError, BackendHTTPError
from localbridge.domain.value_objects import BackendChunk, BackendCompletion, BackendRequest

logger = logging.getLogger(__name__)

DEFAULT_CHAT_URL = "http://127.0.0.1:11434/v1/chat/completions"
CONNECT_TIMEOUT_SECONDS = 10.0
ERROR_BODY_LIMIT = 2000


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


class OpenAIChatBackend:
    """Backend client implementing ChatBackendPort.

    Args:
        chat_url: Full chat-completions URL.
        client: Optional pre-built httpx.AsyncClient (owned by the caller).
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        chat_url: str = DEFAULT_CHAT_URL,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not chat_url:
            raise ValueError("Backend chat URL is required")
        self.chat_url = chat_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(None, connect=CONNECT_TIMEOUT_SECONDS),
            limits=httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0,
            ),
        )

    @property
    def models_url(self) -> str:
        base = self.chat_url.rstrip("/")
        if base.endswith("/chat/completions"):
            base = base[: -len("/chat/completions")]
        return f"{base}/models"

    async def aclose(self) -> None:
        """Close the HTTP client. Call on shutdown."""
        if self._owns_client:
            await self._client.aclose()

    async def check(self) -> bool:
        """Check if the backend answers its model listing."""
        try:
            response = await self._client.get(self.models_url)
        except httpx.HTTPError:
            return False
        return response.is_success

    async def complete(self, request: BackendRequest) -> BackendCompletion:
        """POST with stream=false and parse the completion object."""
        payload = request.to_payload()
        payload["stream"] = False
        logger.debug(f"Backend request: model={request.model}, messages={len(request.messages)}")

        try:
            response = await self._client.post(self.chat_url, json=payload)
        except httpx.TransportError as e:
            logger.warning(f"Could not reach backend at {self.chat_url}: {e!r}")
            raise BackendConnectionError(f"could not connect to backend: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Unreadable backend response: {e!r}")
            raise BackendConnectionError(f"backend response could not be read: {e}") from e

        text = response.text
        data = _parse_json(text)
        if not response.is_success:
            logger.warning(f"Backend returned {response.status_code}: {text[:500]}")
            raise BackendHTTPError(response.status_code, text[:ERROR_BODY_LIMIT], data)

        completion = BackendCompletion.from_payload(data)
        logger.debug(
            f"Backend complete: {len(completion.content)} chars, "
            f"finish_reason={completion.finish_reason}"
        )
        return completion

    async def stream(self, request: BackendRequest) -> AsyncIterator[BackendChunk]:
        """POST with stream=true and yield decoded chunks in arrival order."""
        payload = request.to_payload()
        payload["stream"] = True
        logger.debug(
            f"Backend streaming request: model={request.model}, messages={len(request.messages)}"
        )

        decoder = SSEFrameDecoder()
        try:
            async with self._client.stream("POST", self.chat_url, json=payload) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.warning(
                        f"Backend streaming returned {response.status_code}: {body[:500]}"
                    )
                    raise BackendHTTPError(
                        response.status_code, body[:ERROR_BODY_LIMIT], _parse_json(body)
                    )

                async for raw in response.aiter_bytes():
                    for frame in decoder.feed(raw):
                        chunk = BackendChunk.from_payload(frame)
                        yield chunk
                        if chunk.is_final:
                            return
                    if decoder.done:
                        return

                for frame in decoder.flush():
                    chunk = BackendChunk.from_payload(frame)
                    yield chunk
                    if chunk.is_final:
                        return
        except httpx.TransportError as e:
            logger.warning(f"Backend stream transport failure: {e!r}")
            raise BackendConnectionError(f"backend connection failed: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Unreadable backend stream: {e!r}")
            raise BackendConnectionError(f"backend response could not be read: {e}") from e
        finally:
            if decoder.dropped_frames:
                logger.info(f"Dropped {decoder.dropped_frames} malformed SSE frame(s)")
