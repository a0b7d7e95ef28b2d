"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from photo_echo.config.models import LogFormat, LoggingConfig
from photo_echo.observability.logging import build_processors, configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_sets_root_level(self):
        configure_logging(LoggingConfig(level="WARNING"))
        assert logging.getLogger().level == logging.WARNING

    def test_http_library_loggers_quieted(self):
        configure_logging(LoggingConfig(level="DEBUG"))
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_json_output_has_event_level_and_callsite(
        self, capsys: pytest.CaptureFixture[str]
    ):
        configure_logging(LoggingConfig(level="INFO", format="json"))

        structlog.get_logger().info("poller.started", cursor=5)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "poller.started"
        assert record["cursor"] == 5
        assert record["level"] == "info"
        assert record["at"].startswith("test_logging.py:")
        assert "timestamp" in record

    def test_level_filter_drops_debug(self, capsys: pytest.CaptureFixture[str]):
        configure_logging(LoggingConfig(level="INFO", format="json"))

        structlog.get_logger().debug("gateway.call", method="getMe")

        assert "gateway.call" not in capsys.readouterr().err


class TestBuildProcessors:
    def test_console_renderer_last(self):
        processors = build_processors(LogFormat.CONSOLE)
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_renderer_last(self):
        processors = build_processors(LogFormat.JSON)
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
