"""Minimal asyncio HTTP server for liveness/readiness probes.

``/healthz`` answers 200 while the process is up; ``/readyz`` renders the
bot's health dict and answers 503 once any component reports
``"status": "error"`` (e.g. too many failed polls in a row).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from contextlib import suppress
from http import HTTPStatus
from typing import Any

import structlog

logger = structlog.get_logger()

ReadinessCheck = Callable[[], Awaitable[dict[str, Any]]]

_REQUEST_LINE_TIMEOUT = 5.0


class HealthServer:
    """Serves probe requests on a TCP port until stopped."""

    def __init__(
        self,
        port: int,
        readiness_check: ReadinessCheck,
        *,
        host: str = "0.0.0.0",  # noqa: S104
    ) -> None:
        self._host = host
        self._port = port
        self._readiness_check = readiness_check
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        """Bound port (resolves port 0 to the one picked by the OS)."""
        if self._server is not None and self._server.sockets:
            return int(self._server.sockets[0].getsockname()[1])
        return self._port

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, host=self._host, port=self._port
        )
        logger.info("health.server_started", host=self._host, port=self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("health.server_stopped")

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            line = await asyncio.wait_for(
                reader.readline(), timeout=_REQUEST_LINE_TIMEOUT
            )
            path = self._parse_path(line)
            if path == "/healthz":
                await self._respond(writer, HTTPStatus.OK, {"status": "ok"})
            elif path == "/readyz":
                health = await self._readiness_check()
                status = (
                    HTTPStatus.SERVICE_UNAVAILABLE
                    if self._contains_error(health)
                    else HTTPStatus.OK
                )
                await self._respond(writer, status, health)
            else:
                await self._respond(writer, HTTPStatus.NOT_FOUND, {"error": "not found"})
        except Exception:
            logger.debug("health.request_error", exc_info=True)
            with suppress(Exception):
                await self._respond(
                    writer,
                    HTTPStatus.INTERNAL_SERVER_ERROR,
                    {"error": "internal server error"},
                )
        finally:
            with suppress(Exception):
                writer.close()
                await writer.wait_closed()

    @classmethod
    def _contains_error(cls, health: Any) -> bool:
        """True if any nested mapping carries ``"status": "error"``."""
        if isinstance(health, dict):
            if health.get("status") == "error":
                return True
            return any(cls._contains_error(v) for v in health.values())
        if isinstance(health, list):
            return any(cls._contains_error(item) for item in health)
        return False

    @staticmethod
    def _parse_path(request_line: bytes) -> str:
        parts = request_line.decode("utf-8", errors="replace").split()
        if len(parts) < 2:
            return ""
        return parts[1].split("?", 1)[0]

    @staticmethod
    async def _respond(
        writer: asyncio.StreamWriter, status: HTTPStatus, body: dict[str, Any]
    ) -> None:
        payload = json.dumps(body, default=str).encode()
        head = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            "Content-Type: application/json\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        writer.write(head.encode() + payload)
        await writer.drain()
