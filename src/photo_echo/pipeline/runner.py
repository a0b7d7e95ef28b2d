"""Bot orchestrator — gateway → poll-dispatch loop lifecycle."""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from typing import Any

import structlog

from photo_echo.config.models import AppConfig
from photo_echo.gateway.client import TelegramGateway
from photo_echo.observability.http_health import HealthServer
from photo_echo.pipeline.loop import PollDispatchLoop
from photo_echo.pipeline.processor import EchoProcessor

logger = structlog.get_logger()


class EchoBot:
    """Owns the shared gateway, the loop, and the optional health server."""

    def __init__(
        self,
        config: AppConfig,
        *,
        gateway: TelegramGateway | None = None,
    ) -> None:
        self._config = config
        self._gateway = gateway or TelegramGateway(config.gateway)
        self._loop = PollDispatchLoop(
            self._gateway,
            EchoProcessor(self._gateway),
            config.poller,
        )
        self._health_server: HealthServer | None = None

    @property
    def loop(self) -> PollDispatchLoop:
        return self._loop

    def start(self) -> None:
        """Run the bot until a termination signal arrives (blocking)."""
        asyncio.run(self.run())

    async def run(self) -> None:
        await self._gateway.start()
        try:
            if self._config.health_enabled:
                self._health_server = HealthServer(
                    port=self._config.health_port,
                    readiness_check=self.health,
                )
                await self._health_server.start()
            self._install_signal_handlers()
            await self._loop.run()
        finally:
            await self._shutdown()

    def stop(self) -> None:
        """Signal the loop to stop after the current round."""
        self._loop.stop()

    def _install_signal_handlers(self) -> None:
        running = asyncio.get_running_loop()

        def _shutdown(signum: int) -> None:
            logger.info("bot.shutdown_signal", signal=signum)
            self.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            # Not available on every platform (e.g. Windows event loops).
            with suppress(NotImplementedError, RuntimeError):
                running.add_signal_handler(signum, _shutdown, signum)

    async def _shutdown(self) -> None:
        running = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError, RuntimeError):
                running.remove_signal_handler(signum)
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None
        await self._gateway.stop()

    async def health(self) -> dict[str, Any]:
        return {
            "poller": await self._loop.health(),
            "gateway": await self._gateway.health(),
        }
