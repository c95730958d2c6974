# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain value objects (immutable data structures).

Backend payloads are loosely shaped JSON. Every optional field is resolved
once, in the ``from_payload`` constructors below, so translation code only
ever sees fully-defaulted values.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ChatMessage:
    """A flattened role/text pair in backend (OpenAI) shape.

    ``role`` is None when the client sent none; the key is then left out
    of the payload.
    """

    role: str | None
    content: str

    def to_dict(self) -> dict[str, str]:
        if self.role is None:
            return {"content": self.content}
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class BackendRequest:
    """Outbound chat-completions request."""

    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float
    stream: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the OpenAI chat-completions JSON body."""
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
            "stream": self.stream,
        }


def _first_choice(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        return {}
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return {}
    first = choices[0]
    return first if isinstance(first, dict) else {}


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _int_or_zero(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


@dataclass(frozen=True)
class BackendCompletion:
    """Buffered (stream=false) backend result.

    Attributes:
        content: First choice's message text ("" when absent or malformed).
        finish_reason: Backend finish reason, None when absent.
        input_tokens: usage.prompt_tokens, 0 when absent.
        output_tokens: usage.completion_tokens, 0 when absent.
    """

    content: str = ""
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "BackendCompletion":
        choice = _first_choice(payload)
        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        usage = payload.get("usage") if isinstance(payload, dict) else None
        usage = usage if isinstance(usage, dict) else {}
        return cls(
            content=content if isinstance(content, str) else "",
            finish_reason=_str_or_none(choice.get("finish_reason")),
            input_tokens=_int_or_zero(usage.get("prompt_tokens")),
            output_tokens=_int_or_zero(usage.get("completion_tokens")),
        )


@dataclass(frozen=True)
class BackendChunk:
    """One decoded streaming frame from the backend."""

    text: str = ""
    finish_reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "BackendChunk":
        choice = _first_choice(payload)
        delta = choice.get("delta")
        text = delta.get("content") if isinstance(delta, dict) else None
        return cls(
            text=text if isinstance(text, str) else "",
            finish_reason=_str_or_none(choice.get("finish_reason")),
        )

    @property
    def is_final(self) -> bool:
        return self.finish_reason is not None


@dataclass(frozen=True)
class QueueStats:
    """Point-in-time snapshot of the admission queue."""

    pending: int
    running: int
    limit: int
    max_queue_length: int | None = None
