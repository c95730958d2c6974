# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""CLI entrypoint for the localbridge server.

Usage:
    localbridge serve
    localbridge serve --port 8787 --backend-url http://127.0.0.1:8080/v1/chat/completions
"""

import logging

import typer
import uvicorn

from localbridge import __version__
from localbridge.adapters.config.logging import configure_logging, normalize_level
from localbridge.adapters.config.settings import get_settings
from localbridge.entrypoints.api_server import create_app

app = typer.Typer(
    name="localbridge",
    help="Anthropic Messages API bridge to a local OpenAI-compatible model server",
    add_completion=False,
)


@app.command()
def serve(
    host: str = typer.Option(
        None,
        "--host",
        "-h",
        help="Server bind address (default: from settings)",
    ),
    port: int = typer.Option(
        None,
        "--port",
        "-p",
        help="Server port (default: from settings)",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (default: from settings)",
    ),
    backend_url: str = typer.Option(
        None,
        "--backend-url",
        "-b",
        help="Backend chat-completions URL (default: from settings)",
    ),
    max_inflight: int = typer.Option(
        None,
        "--max-inflight",
        min=1,
        help="Maximum concurrent backend calls (default: from settings)",
    ),
    timeout_ms: int = typer.Option(
        None,
        "--timeout-ms",
        min=1,
        help="Backend call deadline in milliseconds (default: from settings)",
    ),
) -> None:
    """Start the bridge server.

    Example:
        $ localbridge serve
        $ localbridge serve --max-inflight 2 --timeout-ms 120000
    """
    settings = get_settings()

    if host:
        settings.server.host = host
    if port:
        settings.server.port = port
    if log_level:
        settings.server.log_level = normalize_level(log_level)
    if backend_url:
        settings.backend.chat_url = backend_url
    if max_inflight:
        settings.queue.max_inflight = max_inflight
    if timeout_ms:
        settings.backend.timeout_ms = timeout_ms

    configure_logging(settings.server.log_level, json_output=False)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info(f"localbridge v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Listening: http://{settings.server.host}:{settings.server.port}")
    logger.info(f"Backend: {settings.backend.chat_url}")
    logger.info(f"Timeout: {settings.backend.timeout_ms} ms")
    logger.info(f"Max inflight: {settings.queue.max_inflight}")
    logger.info(f"Log level: {settings.server.log_level}")
    logger.info("=" * 60)

    fastapi_app = create_app(settings)

    uvicorn.run(
        fastapi_app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
        access_log=False,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"localbridge v{__version__}")


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()

    typer.echo("=" * 60)
    typer.echo("localbridge - Configuration")
    typer.echo("=" * 60)
    typer.echo()
    typer.echo("[Server]")
    typer.echo(f"  Host: {settings.server.host}")
    typer.echo(f"  Port: {settings.server.port}")
    typer.echo(f"  Log level: {settings.server.log_level}")
    typer.echo(f"  CORS origins: {settings.server.cors_origins}")
    typer.echo(
        f"  Rate limit: {settings.server.rate_limit_per_client} per "
        f"{settings.server.rate_limit_window_seconds}s per client"
    )
    typer.echo()
    typer.echo("[Backend]")
    typer.echo(f"  Chat URL: {settings.backend.chat_url}")
    typer.echo(f"  Timeout: {settings.backend.timeout_ms} ms")
    typer.echo(f"  Default temperature: {settings.backend.default_temperature}")
    typer.echo()
    typer.echo("[Queue]")
    typer.echo(f"  Max inflight: {settings.queue.max_inflight}")
    max_queue = settings.queue.max_queue_length or "unbounded"
    typer.echo(f"  Max queue length: {max_queue}")
    typer.echo()
    routing = settings.routing
    typer.echo("[Routing]")
    typer.echo(f"  Reasoning: {routing.reasoning_model}")
    typer.echo(f"  Code: {routing.code_model}")
    typer.echo(f"  Short (<{routing.short_threshold} chars): {routing.short_model}")
    typer.echo(f"  Default: {routing.default_model}")
    typer.echo("=" * 60)


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
