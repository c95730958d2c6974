# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Integration test configuration.

Builds the real FastAPI app with explicit settings and routes the backend
client through an httpx.MockTransport, so the whole stack (middleware,
routes, queue, backend adapter, SSE decoding) runs without a model server.
"""

import asyncio
import json
from collections.abc import Iterator
from typing import Any

import httpx
import pytest
import sse_starlette.sse as sse_module
from fastapi.testclient import TestClient

from localbridge.adapters.config.settings import (
    BackendSettings,
    QueueSettings,
    RoutingSettings,
    SecretsSettings,
    ServerSettings,
    Settings,
)
from localbridge.entrypoints.api_server import create_app
from tests.conftest import completion_payload, sse_body

CHAT_URL = "http://backend.test/v1/chat/completions"
TOKEN = "test-secret"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


class ScriptedBackend:
    """MockTransport handler imitating an OpenAI-compatible server.

    Attributes:
        chat_requests: JSON bodies of every chat-completions POST received.
        status_code: Status for chat calls (non-2xx returns ``error_body``).
        texts: Fragments streamed (and joined for buffered calls).
        delay: Seconds to wait before answering chat calls.
        raise_error: Transport exception to raise for chat calls.
        garbled: Answer chat calls with a body that fails content decoding.
    """

    def __init__(self) -> None:
        self.chat_requests: list[dict[str, Any]] = []
        self.status_code = 200
        self.error_body: Any = {"error": {"message": "engine crashed"}}
        self.texts = ["Hel", "lo"]
        self.delay = 0.0
        self.raise_error: Exception | None = None
        self.garbled = False

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path == "/v1/models":
            return httpx.Response(200, json={"object": "list", "data": []})

        body = json.loads(request.content)
        self.chat_requests.append(body)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_error is not None:
            raise self.raise_error
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json=self.error_body)
        if self.garbled:
            return httpx.Response(
                200,
                headers={"content-encoding": "gzip"},
                stream=httpx.ByteStream(b"definitely not gzip"),
            )
        if body.get("stream"):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=sse_body(self.texts),
            )
        return httpx.Response(200, json=completion_payload("".join(self.texts)))


def make_settings(
    timeout_ms: int = 5000,
    rate_limit: int = 1000,
    max_queue_length: int = 0,
) -> Settings:
    return Settings(
        server=ServerSettings(
            json_logs=False,
            log_level="WARNING",
            rate_limit_per_client=rate_limit,
        ),
        backend=BackendSettings(chat_url=CHAT_URL, timeout_ms=timeout_ms),
        queue=QueueSettings(max_inflight=1, max_queue_length=max_queue_length),
        routing=RoutingSettings(),
        secrets=SecretsSettings(bearer_token=TOKEN),
    )


def parse_sse(text: str) -> list[tuple[str, dict[str, Any]]]:
    """Split an SSE body into (event name, JSON data) pairs."""
    events = []
    for block in text.replace("\r\n", "\n").split("\n\n"):
        name = data = None
        for line in block.split("\n"):
            if line.startswith("event:"):
                name = line[len("event:") :].strip()
            elif line.startswith("data:"):
                data = line[len("data:") :].strip()
        if name and data:
            events.append((name, json.loads(data)))
    return events


@pytest.fixture(autouse=True)
def _reset_sse_app_status() -> None:
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    app_status = getattr(sse_module, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(backend: ScriptedBackend, settings: Settings) -> Iterator[TestClient]:
    app = create_app(settings, backend_transport=httpx.MockTransport(backend))
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
