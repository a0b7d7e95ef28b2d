"""structlog setup for the bot process."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from photo_echo.config.models import LogFormat, LoggingConfig

# These libraries log full request URLs, which embed the bot token.
_QUIET_LOGGERS = ("httpx", "httpcore")


def _short_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["timestamp"] = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    return event_dict


def _callsite(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    filename = event_dict.pop("filename", None)
    lineno = event_dict.pop("lineno", None)
    if filename is not None:
        event_dict["at"] = f"{filename}:{lineno}"
    return event_dict


def build_processors(fmt: LogFormat) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        _callsite,
    ]
    if fmt == LogFormat.JSON:
        processors += [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [_short_timestamp, structlog.dev.ConsoleRenderer()]
    return processors


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Route structlog through stdlib logging at the configured level."""
    config = config or LoggingConfig()
    level = logging.getLevelNamesMapping()[config.level]

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=build_processors(config.format),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
