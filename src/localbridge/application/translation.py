# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Anthropic Messages -> OpenAI chat-completions request translation.

Content is flattened to plain text. Non-text parts (images, tool blocks)
are dropped from the text representation; the backend only receives text.

Parts may be dicts (raw JSON) or objects exposing ``type``/``text``
attributes (validated pydantic models); both are accepted.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from localbridge.domain.value_objects import ChatMessage


def _field(part: Any, name: str) -> Any:
    if isinstance(part, dict):
        return part.get(name)
    return getattr(part, name, None)


def _text_of(part: Any) -> str:
    text = _field(part, "text")
    return text if isinstance(text, str) else ""


def has_system(system: Any) -> bool:
    """A non-empty string or any list of parts, even one without text."""
    if isinstance(system, str):
        return bool(system)
    return system is not None


def flatten_system(system: Any) -> str:
    """Flatten an Anthropic ``system`` field (string or list of parts).

    Every part's text is joined with newlines; parts without text count
    as empty strings.
    """
    if system is None:
        return ""
    if isinstance(system, str):
        return system
    if isinstance(system, Sequence):
        return "\n".join(_text_of(part) for part in system)
    return str(system)


def flatten_content(content: Any) -> str:
    """Flatten message content, keeping only parts whose type is ``text``."""
    if isinstance(content, str):
        return content
    if isinstance(content, Sequence):
        return "\n".join(
            _text_of(part) for part in content if _field(part, "type") == "text"
        )
    return ""


def anthropic_to_openai(system: Any, messages: Iterable[Any]) -> list[ChatMessage]:
    """Translate an Anthropic system prompt + messages into backend messages.

    Args:
        system: Anthropic ``system`` value (str, list of parts, or None).
        messages: Anthropic messages (dicts or objects with role/content).

    Returns:
        Ordered ChatMessage list, system message first whenever ``system``
            is a non-empty string or a list (an all-image list gives an
            empty system message).

    Example:
        >>> anthropic_to_openai(
        ...     [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
        ...     [{"role": "user", "content": "hi"}],
        ... )
        [ChatMessage(role='system', content='a\\nb'), ChatMessage(role='user', content='hi')]
    """
    result: list[ChatMessage] = []
    if has_system(system):
        result.append(ChatMessage(role="system", content=flatten_system(system)))
    for message in messages:
        role = _field(message, "role")
        result.append(
            ChatMessage(
                role=role if isinstance(role, str) else None,
                content=flatten_content(_field(message, "content")),
            )
        )
    return result


def prompt_text(messages: Iterable[ChatMessage]) -> str:
    """Concatenate all message contents; input for model selection."""
    return "\n".join(m.content for m in messages)
