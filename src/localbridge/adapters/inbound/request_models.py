# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Pydantic request and response models for the inbound API adapter.

Defines models for:
- Anthropic Messages API (/v1/messages) requests, accepted leniently
- Response envelopes and SSE streaming events
- Model listing and health responses
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Anthropic Messages API Models
# ============================================================================


class ContentPart(BaseModel):
    """One typed content part. Only ``text`` parts reach the backend."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    text: str | None = None


class Message(BaseModel):
    """Message in conversation. Missing role or null content is tolerated."""

    model_config = ConfigDict(extra="allow")

    role: str | None = None
    content: str | list[ContentPart] | None = ""


class SystemBlock(BaseModel):
    """System prompt block with optional cache control."""

    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: str = ""
    cache_control: dict[str, Any] | None = None


class MessagesRequest(BaseModel):
    """Request to Anthropic Messages API (POST /v1/messages).

    Unknown fields (max_tokens, tools, metadata, ...) are accepted and
    ignored; the local backend only receives messages and temperature.

    Example:
        {
          "model": "sonnet-4.5",
          "messages": [
            {"role": "user", "content": "Hello!"}
          ],
          "stream": true
        }
    """

    model_config = ConfigDict(extra="allow")

    messages: list[Message]
    model: str | None = None
    system: str | list[SystemBlock] | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    stream: bool = False
    max_tokens: int | None = None


class TextContentBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str


class Usage(BaseModel):
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0


class MessagesResponse(BaseModel):
    """Response from Anthropic Messages API.

    Example:
        {
          "id": "msg_01...",
          "type": "message",
          "role": "assistant",
          "content": [{"type": "text", "text": "Hello!"}],
          "model": "sonnet-4.5",
          "stop_reason": "end_turn",
          "usage": {...}
        }
    """

    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    content: list[TextContentBlock]
    model: str
    stop_reason: Literal["end_turn", "max_tokens", "stop_sequence"] | None
    stop_sequence: str | None = None
    usage: Usage = Field(default_factory=Usage)


# ============================================================================
# Anthropic SSE Streaming Events
# ============================================================================


class MessageStartEvent(BaseModel):
    """SSE event: message_start."""

    type: Literal["message_start"] = "message_start"
    message: MessagesResponse


class ContentBlockStartEvent(BaseModel):
    """SSE event: content_block_start."""

    type: Literal["content_block_start"] = "content_block_start"
    index: int
    content_block: TextContentBlock


class TextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class ContentBlockDeltaEvent(BaseModel):
    """SSE event: content_block_delta."""

    type: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: TextDelta


class ContentBlockStopEvent(BaseModel):
    """SSE event: content_block_stop."""

    type: Literal["content_block_stop"] = "content_block_stop"
    index: int


class MessageStopEvent(BaseModel):
    """SSE event: message_stop."""

    type: Literal["message_stop"] = "message_stop"


# ============================================================================
# Auxiliary endpoints
# ============================================================================


class ModelInfo(BaseModel):
    id: str
    type: Literal["model"] = "model"


class ModelList(BaseModel):
    data: list[ModelInfo]


class HealthResponse(BaseModel):
    """GET /health payload: queue depth and configured limits."""

    status: str = "ok"
    queued: int
    inflight: int
    max_inflight: int
    timeout_ms: int
