# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""localbridge: Anthropic Messages API proxy for local inference backends.

Accepts Anthropic-style /v1/messages requests, serializes them through a
bounded admission queue, and forwards them to an OpenAI-compatible
chat-completions endpoint (Ollama, llama.cpp, vLLM), translating buffered
and streamed responses back into the Anthropic wire format.

Architecture: Hexagonal (Ports & Adapters)
- Domain core: errors, value objects, model routing (stdlib only)
- Application: admission queue, request translation, streaming sessions
- Adapters: FastAPI inbound routes and middleware, httpx backend client
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
