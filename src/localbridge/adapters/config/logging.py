# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Structured logging configuration.

Two kinds of loggers share one pipeline:
- structlog loggers in the HTTP layer (event names with key/value fields)
- stdlib ``logging`` loggers in the admission queue, message service and
  backend adapter (plain messages)

Both are rendered by one ``structlog.stdlib.ProcessorFormatter`` on a
stdout handler, so a queue or backend line carries the ``request_id``
bound by the request context middleware, in the same JSON (or console)
format as the access log.
"""

import logging
import sys

import structlog
from structlog.typing import Processor

VALID_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

HANDLER_NAME = "localbridge"

# httpx/httpcore log every backend call, sse_starlette every ping and disconnect
QUIET_LOGGERS = ("httpx", "httpcore", "sse_starlette")


def normalize_level(log_level: str) -> str:
    """Upper-case ``log_level``, falling back to INFO for unknown names."""
    normalized = (log_level or "").upper()
    if normalized not in VALID_LEVELS:
        logging.warning(
            f"Invalid log level '{log_level}', defaulting to INFO. "
            f"Valid levels: {', '.join(sorted(VALID_LEVELS))}"
        )
        return "INFO"
    return normalized


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def build_formatter(json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering both structlog events and stdlib records."""
    final: list[Processor]
    if json_output:
        final = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        final = [structlog.dev.ConsoleRenderer()]

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
    )


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure stdlib logging and structlog.

    Replaces a handler installed by an earlier call; handlers owned by
    others (uvicorn, pytest) are left alone.
    """
    level = getattr(logging, normalize_level(log_level))

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(build_formatter(json_output))

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
