# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Pytest configuration and shared fixtures.

This module defines:
- Test markers (unit, integration, property)
- A scripted fake ChatBackendPort for application-level tests
- Helpers for building OpenAI-style backend payloads and SSE bodies
"""

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from typing import Any

import pytest

from localbridge.domain.errors import BackendError
from localbridge.domain.value_objects import BackendChunk, BackendCompletion, BackendRequest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: Fast unit tests with faked boundaries (no network)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Full app tests through FastAPI TestClient with a mocked backend",
    )
    config.addinivalue_line(
        "markers",
        "property: Hypothesis property-based tests",
    )


# ---------------------------------------------------------------------------
# Backend payload helpers
# ---------------------------------------------------------------------------


def completion_payload(
    content: str = "Hello!",
    prompt_tokens: int = 3,
    completion_tokens: int = 2,
) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def chunk_payload(text: str | None = None, finish_reason: str | None = None) -> dict[str, Any]:
    delta = {} if text is None else {"content": text}
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def sse_body(texts: Iterable[str], done: bool = True, finish: bool = True) -> bytes:
    """OpenAI-style SSE body streaming ``texts`` as deltas."""
    frames = [f"data: {json.dumps(chunk_payload(text))}\n\n" for text in texts]
    if finish:
        frames.append(f"data: {json.dumps(chunk_payload(finish_reason='stop'))}\n\n")
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeBackend:
    """Scripted ChatBackendPort.

    Args:
        texts: Fragments yielded by ``stream`` (and joined for ``complete``).
        error: Raised by ``complete`` / by ``stream`` after ``fail_after`` chunks.
        fail_after: Number of chunks streamed before ``error`` is raised.
        gate: When set, every call waits on it before producing output.
    """

    def __init__(
        self,
        texts: Iterable[str] = ("Hel", "lo"),
        error: BackendError | None = None,
        fail_after: int = 0,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.texts = list(texts)
        self.error = error
        self.fail_after = fail_after
        self.gate = gate
        self.requests: list[BackendRequest] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def _enter(self, request: BackendRequest) -> None:
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.gate is not None:
            await self.gate.wait()

    async def complete(self, request: BackendRequest) -> BackendCompletion:
        await self._enter(request)
        try:
            if self.error is not None:
                raise self.error
            return BackendCompletion(
                content="".join(self.texts),
                finish_reason="stop",
                input_tokens=7,
                output_tokens=len(self.texts),
            )
        finally:
            self.active -= 1

    async def stream(self, request: BackendRequest) -> AsyncIterator[BackendChunk]:
        await self._enter(request)
        try:
            for index, text in enumerate(self.texts):
                if self.error is not None and index == self.fail_after:
                    raise self.error
                yield BackendChunk(text=text)
            if self.error is not None and self.fail_after >= len(self.texts):
                raise self.error
            yield BackendChunk(finish_reason="stop")
        finally:
            self.active -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()
