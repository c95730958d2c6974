# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Per-request Anthropic SSE event sequencing.

A TranslationSession turns backend text fragments into Anthropic streaming
events and guarantees the envelope shape whatever happens upstream:

    message_start, content_block_start, content_block_delta*,
    content_block_stop, message_stop

Each envelope event is emitted exactly once, in that order. Methods return
lists of SSE event dicts (``{"event": ..., "data": <json>}``) ready for
sse-starlette; calls that would break the sequence return an empty list.
"""

import json
import uuid
from typing import Any

from pydantic import BaseModel

from localbridge.adapters.inbound.request_models import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    MessagesResponse,
    MessageStartEvent,
    MessageStopEvent,
    TextContentBlock,
    TextDelta,
    Usage,
)

SSEEvent = dict[str, Any]


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def _event(payload: BaseModel) -> SSEEvent:
    data = payload.model_dump()
    return {"event": data["type"], "data": json.dumps(data, ensure_ascii=False)}


class TranslationSession:
    """Ephemeral streaming state for one request. Never shared."""

    def __init__(self, model: str, message_id: str | None = None) -> None:
        self.model = model
        self.message_id = message_id or new_message_id()
        self.opened = False
        self.closed = False
        self.delta_count = 0

    def open(self) -> list[SSEEvent]:
        """Emit message_start + content_block_start (once)."""
        if self.opened or self.closed:
            return []
        self.opened = True
        return [
            _event(
                MessageStartEvent(
                    message=MessagesResponse(
                        id=self.message_id,
                        content=[],
                        model=self.model,
                        stop_reason=None,
                        usage=Usage(),
                    )
                )
            ),
            _event(ContentBlockStartEvent(index=0, content_block=TextContentBlock(text=""))),
        ]

    def delta(self, text: str) -> list[SSEEvent]:
        """Emit one text delta, opening the envelope first if needed."""
        if self.closed or not text:
            return []
        events = self.open()
        events.append(_event(ContentBlockDeltaEvent(index=0, delta=TextDelta(text=text))))
        self.delta_count += 1
        return events

    def close(self) -> list[SSEEvent]:
        """Emit content_block_stop + message_stop (once)."""
        if self.closed:
            return []
        events = self.open()
        self.closed = True
        events.append(_event(ContentBlockStopEvent(index=0)))
        events.append(_event(MessageStopEvent()))
        return events

    def fail(self, message: str) -> list[SSEEvent]:
        """Terminate with a human-readable failure as the final delta."""
        if self.closed:
            return []
        return self.delta(message) + self.close()
