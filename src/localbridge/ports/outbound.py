# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Outbound port interfaces (driven adapters).

These ports define the contracts for the application core to interact
with the inference backend. Implementations are provided by outbound
adapters (OpenAI-compatible HTTP client, test fakes).

All interfaces use Protocol (PEP 544) for structural typing, allowing
implicit implementation without inheritance.
"""

from collections.abc import AsyncIterator
from typing import Protocol

from localbridge.domain.value_objects import BackendChunk, BackendCompletion, BackendRequest


class ChatBackendPort(Protocol):
    """Port for a chat-completions inference backend."""

    async def complete(self, request: BackendRequest) -> BackendCompletion:
        """Run a buffered (stream=false) completion.

        Raises:
            BackendHTTPError: Backend answered non-2xx.
            BackendConnectionError: Backend unreachable.
        """
        ...

    def stream(self, request: BackendRequest) -> AsyncIterator[BackendChunk]:
        """Run a streaming (stream=true) completion.

        Yields decoded chunks in the order received. Ends at the backend's
        end-of-stream sentinel or the first chunk carrying a finish reason.

        Raises:
            BackendHTTPError: Backend answered non-2xx (before any chunk).
            BackendConnectionError: Backend unreachable or connection dropped.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
