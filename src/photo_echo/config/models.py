"""Pydantic configuration models for the photo echo bot."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class LogFormat(StrEnum):
    """Supported log renderers."""

    CONSOLE = "console"
    JSON = "json"


class GatewayConfig(BaseModel):
    """Bot API endpoint, credential, and per-call timeouts."""

    api_url: str = "https://api.telegram.org"
    file_url: str = "https://api.telegram.org/file"
    token: SecretStr | None = None
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    # Long-poll calls block server-side, so they need a larger bound.
    poll_request_timeout_seconds: float = Field(default=90.0, gt=0)
    allowed_updates: list[str] = Field(default_factory=lambda: ["message"])
    user_agent: str = "photo-echo/0.1"

    @field_validator("api_url", "file_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            msg = f"URL '{v}' must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def reject_blank_token(cls, v: SecretStr | None) -> SecretStr | None:
        if v is not None and not v.get_secret_value().strip():
            return None
        return v


class BackoffConfig(BaseModel):
    """Capped exponential backoff between consecutive failed polls."""

    initial_wait_seconds: float = Field(default=1.0, ge=0)
    max_wait_seconds: float = Field(default=30.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True

    @model_validator(mode="after")
    def check_bounds(self) -> Self:
        if self.max_wait_seconds < self.initial_wait_seconds:
            msg = "max_wait_seconds must be >= initial_wait_seconds"
            raise ValueError(msg)
        return self


class PollerConfig(BaseModel):
    """Poll-dispatch loop tuning."""

    wait_seconds: int = Field(default=60, ge=0, le=600)
    initial_cursor: int = Field(default=0, ge=0)
    max_concurrent_events: int = Field(default=16, ge=1)
    backoff: BackoffConfig = BackoffConfig()
    # Readiness turns to error after this many failed polls in a row.
    unhealthy_after_failures: int = Field(default=5, ge=1)


class LoggingConfig(BaseModel):
    """structlog output settings."""

    level: str = "DEBUG"
    format: LogFormat = LogFormat.CONSOLE

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unknown log level '{v}'"
            raise ValueError(msg)
        return level


class AppConfig(BaseModel, extra="forbid"):
    """Top-level configuration."""

    gateway: GatewayConfig = GatewayConfig()
    poller: PollerConfig = PollerConfig()
    logging: LoggingConfig = LoggingConfig()
    health_enabled: bool = False
    health_port: int = Field(default=8080, ge=0, le=65535)

    @model_validator(mode="after")
    def check_poll_timeout(self) -> Self:
        """The HTTP timeout of a long poll must outlast the server-side wait."""
        if self.gateway.poll_request_timeout_seconds <= self.poller.wait_seconds:
            msg = (
                "gateway.poll_request_timeout_seconds "
                f"({self.gateway.poll_request_timeout_seconds}) must exceed "
                f"poller.wait_seconds ({self.poller.wait_seconds})"
            )
            raise ValueError(msg)
        return self
