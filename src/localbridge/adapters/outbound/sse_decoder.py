# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Incremental decoder for OpenAI-style server-sent events.

The backend frames each event as ``data: <json>`` followed by a blank line
and ends the stream with ``data: [DONE]``. Transport chunks can split a
frame anywhere, including inside a multibyte UTF-8 character, so raw bytes
are buffered and a frame is only decoded once its terminating blank line
has arrived.
"""

import json
import logging
from typing import Any

from localbridge.domain.errors import FrameDecodeError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
FRAME_SEPARATOR = b"\n\n"


class SSEFrameDecoder:
    """Push bytes in with ``feed()``, get complete JSON payloads out.

    Example:
        decoder = SSEFrameDecoder()
        for chunk in transport_chunks:
            for payload in decoder.feed(chunk):
                handle(payload)
            if decoder.done:
                break
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.done = False
        self.dropped_frames = 0

    @property
    def buffered(self) -> int:
        """Bytes held back waiting for a frame boundary."""
        return len(self._buffer)

    def feed(self, chunk: bytes | str) -> list[dict[str, Any]]:
        """Add a transport chunk and return payloads of completed frames.

        Nothing is returned once the ``[DONE]`` sentinel has been seen.
        """
        if self.done:
            return []
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer += chunk
        if b"\r" in self._buffer:
            self._buffer = bytearray(self._buffer.replace(b"\r\n", b"\n"))

        payloads: list[dict[str, Any]] = []
        while not self.done:
            idx = self._buffer.find(FRAME_SEPARATOR)
            if idx < 0:
                break
            frame = bytes(self._buffer[:idx])
            del self._buffer[: idx + len(FRAME_SEPARATOR)]
            payload = self._decode(frame)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[dict[str, Any]]:
        """Decode a trailing frame left unterminated at end of stream."""
        if self.done or not self._buffer.strip():
            self._buffer.clear()
            return []
        frame = bytes(self._buffer)
        self._buffer.clear()
        payload = self._decode(frame)
        return [payload] if payload is not None else []

    def _decode(self, frame: bytes) -> dict[str, Any] | None:
        try:
            data = parse_frame(frame)
        except FrameDecodeError as exc:
            self.dropped_frames += 1
            logger.debug(f"Dropping malformed SSE frame: {exc}")
            return None
        if data == DONE_SENTINEL:
            self.done = True
            return None
        return data


def parse_frame(frame: bytes) -> dict[str, Any] | str | None:
    """Parse one blank-line-delimited frame.

    Returns:
        The JSON object of the frame's ``data:`` field, the string
        ``"[DONE]"`` for the end-of-stream sentinel, or None for frames
        without data (comments, keep-alives).

    Raises:
        FrameDecodeError: Frame is not UTF-8 or its data is not a JSON object.
    """
    try:
        text = frame.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FrameDecodeError(f"invalid UTF-8 in frame: {exc}") from exc

    data_lines = [
        line[len("data:") :].strip() for line in text.split("\n") if line.startswith("data:")
    ]
    payload = "\n".join(data_lines).strip()
    if not payload:
        return None
    if payload == DONE_SENTINEL:
        return DONE_SENTINEL

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise FrameDecodeError(f"invalid JSON payload {payload[:100]!r}") from exc
    if not isinstance(parsed, dict):
        raise FrameDecodeError(f"expected JSON object, got {type(parsed).__name__}")
    return parsed
