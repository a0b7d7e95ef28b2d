"""Unit tests for configuration Pydantic models."""

import pytest
from pydantic import ValidationError

from photo_echo.config.models import (
    AppConfig,
    BackoffConfig,
    GatewayConfig,
    LogFormat,
    LoggingConfig,
    PollerConfig,
)


class TestGatewayConfig:
    def test_defaults(self):
        cfg = GatewayConfig()
        assert cfg.api_url == "https://api.telegram.org"
        assert cfg.file_url == "https://api.telegram.org/file"
        assert cfg.request_timeout_seconds == 10.0
        assert cfg.connect_timeout_seconds == 10.0
        assert cfg.poll_request_timeout_seconds == 90.0
        assert cfg.allowed_updates == ["message"]
        assert cfg.token is None

    def test_trailing_slash_stripped(self):
        cfg = GatewayConfig(api_url="http://localhost:8081/")
        assert cfg.api_url == "http://localhost:8081"

    def test_non_http_url_rejected(self):
        with pytest.raises(ValidationError, match="http"):
            GatewayConfig(api_url="ftp://example.com")

    def test_blank_token_becomes_none(self):
        assert GatewayConfig(token="   ").token is None

    def test_token_is_secret(self):
        cfg = GatewayConfig(token="123:abc")
        assert cfg.token is not None
        assert cfg.token.get_secret_value() == "123:abc"
        assert "123:abc" not in str(cfg)
        assert "123:abc" not in repr(cfg)
        assert "123:abc" not in cfg.model_dump_json()


class TestPollerConfig:
    def test_defaults(self):
        cfg = PollerConfig()
        assert cfg.wait_seconds == 60
        assert cfg.initial_cursor == 0
        assert cfg.max_concurrent_events == 16
        assert cfg.backoff.multiplier == 2.0

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            PollerConfig(max_concurrent_events=0)

    def test_negative_cursor_rejected(self):
        with pytest.raises(ValidationError):
            PollerConfig(initial_cursor=-1)

    def test_backoff_max_below_initial_rejected(self):
        with pytest.raises(ValidationError, match="max_wait_seconds"):
            BackoffConfig(initial_wait_seconds=5, max_wait_seconds=1)

    def test_zero_backoff_allowed(self):
        cfg = BackoffConfig(initial_wait_seconds=0, max_wait_seconds=0)
        assert cfg.initial_wait_seconds == 0


class TestLoggingConfig:
    def test_level_normalized(self):
        assert LoggingConfig(level="info").level == "INFO"

    def test_unknown_level_rejected(self):
        with pytest.raises(ValidationError, match="log level"):
            LoggingConfig(level="chatty")

    def test_format_enum(self):
        assert LoggingConfig(format="json").format == LogFormat.JSON


class TestAppConfig:
    def test_defaults_valid(self):
        cfg = AppConfig()
        assert cfg.health_enabled is False
        assert cfg.health_port == 8080

    def test_poll_timeout_must_exceed_wait(self):
        with pytest.raises(ValidationError, match="must exceed"):
            AppConfig(
                gateway=GatewayConfig(poll_request_timeout_seconds=30),
                poller=PollerConfig(wait_seconds=60),
            )

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"bogus": 1})
