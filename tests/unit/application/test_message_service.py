# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for MessageService (queue + backend + envelope orchestration)."""

import asyncio
import json

import pytest

from localbridge.adapters.inbound.request_models import MessagesRequest
from localbridge.application.admission_queue import AdmissionQueue
from localbridge.application.message_service import MessageService, describe_failure
from localbridge.domain.errors import (
    BackendConnectionError,
    BackendHTTPError,
    BackendTimeoutError,
    QueueFullError,
)
from tests.conftest import FakeBackend

pytestmark = pytest.mark.unit


def make_request(**overrides) -> MessagesRequest:
    body = {"messages": [{"role": "user", "content": "hi"}], **overrides}
    return MessagesRequest.model_validate(body)


def make_service(backend: FakeBackend, queue: AdmissionQueue | None = None, **kwargs):
    return MessageService(queue or AdmissionQueue(limit=1), backend, **kwargs)


async def collect(service: MessageService, request: MessagesRequest) -> list[dict]:
    return [event async for event in service.stream_message(request)]


def event_names(events: list[dict]) -> list[str]:
    return [event["event"] for event in events]


def delta_texts(events: list[dict]) -> list[str]:
    return [
        json.loads(event["data"])["delta"]["text"]
        for event in events
        if event["event"] == "content_block_delta"
    ]


class TestDescribeFailure:
    def test_model_not_found_lists_pull_commands(self) -> None:
        error = BackendHTTPError(404, detail={"error": {"message": 'model "qwen3:8b" not found'}})

        text = describe_failure(error)

        assert "model not found" in text
        for model in ("qwen3:0.6b", "qwen2.5-coder", "deepseek-r1:7b", "qwen3:8b"):
            assert f"ollama pull {model}" in text

    def test_timeout(self) -> None:
        text = describe_failure(BackendTimeoutError(600))
        assert text.startswith("Local model inference timed out (>600s)")

    def test_http_prefix_is_stripped(self) -> None:
        text = describe_failure(BackendHTTPError(500, body="engine crashed"))
        assert text == "Local model call failed: engine crashed"

    def test_connection_error(self) -> None:
        text = describe_failure(BackendConnectionError("could not connect to backend: refused"))
        assert text == "Local model call failed: could not connect to backend: refused"


class TestBuildRequest:
    def test_routes_and_defaults_temperature(self) -> None:
        service = make_service(FakeBackend())

        backend_request = service.build_request(make_request(system="be brief"))

        assert backend_request.model == "qwen3:0.6b"
        assert backend_request.temperature == 0.2
        assert [m.role for m in backend_request.messages] == ["system", "user"]

    def test_request_temperature_wins(self) -> None:
        service = make_service(FakeBackend())
        assert service.build_request(make_request(temperature=0.0)).temperature == 0.0

    def test_system_text_takes_part_in_routing(self) -> None:
        service = make_service(FakeBackend())
        backend_request = service.build_request(make_request(system="explain step by step"))
        assert backend_request.model == "deepseek-r1:7b"


class TestCreateMessage:
    @pytest.mark.asyncio
    async def test_success_envelope(self) -> None:
        backend = FakeBackend(texts=["Hel", "lo"])
        service = make_service(backend)

        status_code, envelope = await service.create_message(make_request())

        assert status_code == 200
        assert envelope.content[0].text == "Hello"
        assert envelope.model == "sonnet-4.5"
        assert envelope.stop_reason == "end_turn"
        assert envelope.usage.input_tokens == 7
        assert envelope.id.startswith("msg_")
        assert backend.requests[0].stream is False

    @pytest.mark.asyncio
    async def test_echoes_requested_model(self) -> None:
        service = make_service(FakeBackend())
        _, envelope = await service.create_message(make_request(model="claude-opus-x"))
        assert envelope.model == "claude-opus-x"

    @pytest.mark.asyncio
    async def test_backend_error_keeps_envelope_shape(self) -> None:
        backend = FakeBackend(error=BackendHTTPError(500, body="engine crashed"))
        service = make_service(backend)

        status_code, envelope = await service.create_message(make_request())

        assert status_code == 502
        assert envelope.content[0].text == "Local model call failed: engine crashed"
        assert envelope.stop_reason == "end_turn"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_504_and_frees_slot(self) -> None:
        backend = FakeBackend(gate=asyncio.Event())
        queue = AdmissionQueue(limit=1)
        service = make_service(backend, queue, timeout_seconds=0.05)

        status_code, envelope = await service.create_message(make_request())

        assert status_code == 504
        assert "timed out (>0.05s)" in envelope.content[0].text
        await asyncio.sleep(0)
        assert queue.running == 0
        assert backend.active == 0

    @pytest.mark.asyncio
    async def test_queue_full_propagates(self) -> None:
        gate = asyncio.Event()
        queue = AdmissionQueue(limit=1, max_queue_length=1)
        service = make_service(FakeBackend(gate=gate), queue)

        first = asyncio.create_task(service.create_message(make_request()))
        second = asyncio.create_task(service.create_message(make_request()))
        await asyncio.sleep(0)

        with pytest.raises(QueueFullError):
            await service.create_message(make_request())

        gate.set()
        assert [r[0] for r in await asyncio.gather(first, second)] == [200, 200]

    @pytest.mark.asyncio
    async def test_calls_are_serialized(self) -> None:
        backend = FakeBackend()
        service = make_service(backend, AdmissionQueue(limit=1))

        await asyncio.gather(*(service.create_message(make_request()) for _ in range(4)))

        assert backend.max_active == 1
        assert len(backend.requests) == 4


class TestStreamMessage:
    @pytest.mark.asyncio
    async def test_success_sequence(self) -> None:
        backend = FakeBackend(texts=["Hel", "lo"])
        service = make_service(backend)

        events = await collect(service, make_request(stream=True))

        assert event_names(events) == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "content_block_delta",
            "content_block_stop",
            "message_stop",
        ]
        assert delta_texts(events) == ["Hel", "lo"]
        assert backend.requests[0].stream is True

    @pytest.mark.asyncio
    async def test_empty_stream_still_has_envelope(self) -> None:
        service = make_service(FakeBackend(texts=[]))
        events = await collect(service, make_request(stream=True))
        assert event_names(events) == [
            "message_start",
            "content_block_start",
            "content_block_stop",
            "message_stop",
        ]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_terminates_cleanly(self) -> None:
        backend = FakeBackend(
            texts=["partial", "never"],
            error=BackendConnectionError("backend connection failed: reset"),
            fail_after=1,
        )
        queue = AdmissionQueue(limit=1)
        service = make_service(backend, queue)

        events = await collect(service, make_request(stream=True))

        names = event_names(events)
        assert names.count("message_start") == 1
        assert names.count("message_stop") == 1
        assert names[-2:] == ["content_block_stop", "message_stop"]
        assert delta_texts(events) == [
            "partial",
            "Local model call failed: backend connection failed: reset",
        ]
        await asyncio.sleep(0)
        assert queue.is_empty

    @pytest.mark.asyncio
    async def test_error_before_any_chunk(self) -> None:
        error = BackendHTTPError(404, detail={"error": {"message": "model 'x' not found"}})
        service = make_service(FakeBackend(error=error))

        events = await collect(service, make_request(stream=True))

        assert len(events) == 5
        assert "ollama pull" in delta_texts(events)[0]

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        service = make_service(FakeBackend(gate=asyncio.Event()), timeout_seconds=0.05)

        events = await collect(service, make_request(stream=True))

        assert event_names(events)[-1] == "message_stop"
        assert "timed out (>0.05s)" in delta_texts(events)[0]

    @pytest.mark.asyncio
    async def test_queue_full_yields_failure_sequence(self) -> None:
        gate = asyncio.Event()
        queue = AdmissionQueue(limit=1, max_queue_length=1)
        service = make_service(FakeBackend(gate=gate), queue)
        blockers = [
            asyncio.create_task(service.create_message(make_request())) for _ in range(2)
        ]
        await asyncio.sleep(0)

        events = await collect(service, make_request(stream=True))

        assert len(events) == 5
        assert "busy" in delta_texts(events)[0]
        gate.set()
        await asyncio.gather(*blockers)

    @pytest.mark.asyncio
    async def test_consumer_disconnect_cancels_job(self) -> None:
        backend = FakeBackend(gate=asyncio.Event())
        queue = AdmissionQueue(limit=1)
        service = make_service(backend, queue)
        stream = service.stream_message(make_request(stream=True))

        consumer = asyncio.create_task(anext(stream))
        for _ in range(3):
            await asyncio.sleep(0)
        assert queue.running == 1

        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer
        for _ in range(3):
            await asyncio.sleep(0)

        assert queue.running == 0
        assert backend.active == 0

    @pytest.mark.asyncio
    async def test_streams_wait_their_turn(self) -> None:
        backend = FakeBackend(texts=["x"])
        service = make_service(backend, AdmissionQueue(limit=1))

        results = await asyncio.gather(
            *(collect(service, make_request(stream=True)) for _ in range(3))
        )

        assert backend.max_active == 1
        assert all(len(events) == 5 for events in results)
