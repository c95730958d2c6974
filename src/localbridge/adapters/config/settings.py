# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Configuration management using Pydantic Settings.

Every group reads ``LOCALBRIDGE_<GROUP>_*`` variables and a ``.env`` file.
A few fields also accept the short legacy names operators already use
(``OLLAMA_TIMEOUT_MS``, ``MAX_INFLIGHT``, ``PROXY_BEARER``).
"""

from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from localbridge.domain.services import SHORT_TEXT_THRESHOLD


class ServerSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALBRIDGE_SERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(
        default="127.0.0.1",
        description="Server bind address",
    )

    port: int = Field(
        default=8787,
        ge=1,
        le=65535,
        description="Server port",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    json_logs: bool = Field(
        default=True,
        description="Render logs as JSON (console renderer when false or at DEBUG)",
    )

    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins (* for all)",
    )

    rate_limit_per_client: int = Field(
        default=100,
        ge=1,
        le=100000,
        description="Maximum requests per client IP per window",
    )

    rate_limit_window_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Sliding rate-limit window in seconds",
    )


class BackendSettings(BaseSettings):
    """Local inference backend (OpenAI-compatible) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALBRIDGE_BACKEND_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    chat_url: str = Field(
        default="http://127.0.0.1:11434/v1/chat/completions",
        description="Chat-completions endpoint of the local backend",
    )

    timeout_ms: int = Field(
        default=600000,
        ge=1,
        validation_alias=AliasChoices("LOCALBRIDGE_BACKEND_TIMEOUT_MS", "OLLAMA_TIMEOUT_MS"),
        description="Per-call backend deadline in milliseconds",
    )

    default_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Temperature used when the request does not set one",
    )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class QueueSettings(BaseSettings):
    """Admission queue configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALBRIDGE_QUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    max_inflight: int = Field(
        default=1,
        ge=1,
        le=64,
        validation_alias=AliasChoices("LOCALBRIDGE_QUEUE_MAX_INFLIGHT", "MAX_INFLIGHT"),
        description="Maximum concurrent backend calls",
    )

    max_queue_length: int = Field(
        default=0,
        ge=0,
        description="Maximum pending requests (0 = unbounded)",
    )


class RoutingSettings(BaseSettings):
    """Model selection policy."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALBRIDGE_ROUTING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    reasoning_model: str = Field(default="deepseek-r1:7b")
    code_model: str = Field(default="qwen2.5-coder")
    short_model: str = Field(default="qwen3:0.6b")
    default_model: str = Field(default="qwen3:8b")

    short_threshold: int = Field(
        default=SHORT_TEXT_THRESHOLD,
        ge=0,
        description="Prompts shorter than this (characters) use the short model",
    )

    response_model: str = Field(
        default="sonnet-4.5",
        description="Model name echoed to clients that did not send one",
    )


class SecretsSettings(BaseSettings):
    """Sensitive configuration (bearer secret).

    Loaded from environment variables only.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOCALBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    bearer_token: SecretStr = Field(
        default=SecretStr("local"),
        validation_alias=AliasChoices("LOCALBRIDGE_BEARER_TOKEN", "PROXY_BEARER"),
        description="Shared secret clients present as Bearer token or x-api-key",
    )


class Settings(BaseSettings):
    """Root settings container.

    Example:
        >>> settings = Settings()
        >>> settings.backend.chat_url
        'http://127.0.0.1:11434/v1/chat/completions'
        >>> settings.queue.max_inflight
        1
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    secrets: SecretsSettings = Field(default_factory=SecretsSettings)


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings (for testing).

    Forces reload of configuration from environment.
    """
    global _settings
    _settings = Settings()
    return _settings
