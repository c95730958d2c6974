# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for request and response models.

Tests validation, serialization, and parsing for:
- Anthropic Messages API requests (lenient)
- Response envelope and SSE event payloads
"""

import pytest
from pydantic import ValidationError

from localbridge.adapters.inbound.request_models import (
    ContentBlockDeltaEvent,
    HealthResponse,
    Message,
    MessagesRequest,
    MessagesResponse,
    SystemBlock,
    TextContentBlock,
    TextDelta,
    Usage,
)

pytestmark = pytest.mark.unit


class TestMessagesRequest:
    def test_minimal(self) -> None:
        request = MessagesRequest(messages=[{"role": "user", "content": "Hello"}])

        assert request.model is None
        assert request.stream is False
        assert request.temperature is None
        assert request.messages[0].content == "Hello"

    def test_unknown_fields_are_accepted(self) -> None:
        request = MessagesRequest.model_validate(
            {
                "model": "claude-sonnet-4-5",
                "messages": [{"role": "user", "content": "hi"}],
                "tools": [{"name": "search"}],
                "metadata": {"user_id": "u1"},
                "max_tokens": 4096,
            }
        )
        assert request.max_tokens == 4096

    def test_system_as_blocks(self) -> None:
        request = MessagesRequest(
            messages=[],
            system=[{"type": "text", "text": "Be brief.", "cache_control": {"type": "ephemeral"}}],
        )
        assert isinstance(request.system[0], SystemBlock)
        assert request.system[0].text == "Be brief."

    def test_content_parts_keep_non_text_types(self) -> None:
        message = Message(
            role="user",
            content=[{"type": "text", "text": "a"}, {"type": "tool_result", "content": "x"}],
        )
        assert [part.type for part in message.content] == ["text", "tool_result"]
        assert message.content[1].text is None

    def test_lenient_messages(self) -> None:
        request = MessagesRequest.model_validate(
            {
                "messages": [
                    {"role": "user", "content": None},
                    {"role": "user", "content": [{"text": "untyped"}]},
                    {"content": "no role"},
                ]
            }
        )

        assert request.messages[0].content is None
        assert request.messages[1].content[0].type == ""
        assert request.messages[2].role is None

    @pytest.mark.parametrize("temperature", [-0.1, 2.5])
    def test_temperature_bounds(self, temperature: float) -> None:
        with pytest.raises(ValidationError):
            MessagesRequest(messages=[], temperature=temperature)

    def test_messages_required(self) -> None:
        with pytest.raises(ValidationError):
            MessagesRequest.model_validate({"model": "x"})


class TestResponseModels:
    def test_envelope_defaults(self) -> None:
        envelope = MessagesResponse(
            id="msg_1",
            content=[TextContentBlock(text="Hi")],
            model="sonnet-4.5",
            stop_reason="end_turn",
        )

        assert envelope.model_dump() == {
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "content": [{"type": "text", "text": "Hi"}],
            "model": "sonnet-4.5",
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        }

    def test_delta_event(self) -> None:
        event = ContentBlockDeltaEvent(index=0, delta=TextDelta(text="x"))
        assert event.model_dump() == {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": "x"},
        }

    def test_usage_defaults(self) -> None:
        assert Usage().model_dump() == {"input_tokens": 0, "output_tokens": 0}

    def test_health(self) -> None:
        health = HealthResponse(queued=2, inflight=1, max_inflight=1, timeout_ms=600000)
        assert health.status == "ok"
