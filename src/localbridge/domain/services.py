# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain services.

ModelRouter picks the backend model for a flattened prompt. Selection is a
pure function of the text: no I/O, no state, always returns a model id.

Priority: reasoning keywords > code keywords > short non-code text > default.
"""

import re
from dataclasses import dataclass

CODE_PATTERN = re.compile(
    r"(代码|code|class|import|docker|sql|bash|python|java|js|ts|bug|报错|编译|运行)",
    re.IGNORECASE,
)
REASONING_PATTERN = re.compile(
    r"(证明|推导|为什么|一步一步|严谨|推理|prove|derive|step by step|reason)",
    re.IGNORECASE,
)

SHORT_TEXT_THRESHOLD = 160


@dataclass(frozen=True)
class ModelRouter:
    """Keyword/length routing policy over a fixed set of backend models.

    Attributes:
        reasoning_model: Chosen when a reasoning keyword matches.
        code_model: Chosen when a code keyword matches.
        short_model: Chosen for short prompts without code keywords.
        default_model: Fallback for everything else.
        short_threshold: Prompts with fewer characters count as short.
    """

    reasoning_model: str = "deepseek-r1:7b"
    code_model: str = "qwen2.5-coder"
    short_model: str = "qwen3:0.6b"
    default_model: str = "qwen3:8b"
    short_threshold: int = SHORT_TEXT_THRESHOLD

    def pick(self, text: str) -> str:
        """Return the backend model id for ``text``."""
        if REASONING_PATTERN.search(text):
            return self.reasoning_model
        if CODE_PATTERN.search(text):
            return self.code_model
        if len(text) < self.short_threshold:
            return self.short_model
        return self.default_model

    @property
    def models(self) -> tuple[str, ...]:
        return (
            self.reasoning_model,
            self.code_model,
            self.short_model,
            self.default_model,
        )


DEFAULT_ROUTER = ModelRouter()


def pick_model(text: str, router: ModelRouter = DEFAULT_ROUTER) -> str:
    """Pick a backend model for ``text`` using ``router`` (default policy)."""
    return router.pick(text)
