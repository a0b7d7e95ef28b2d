"""Unit tests for the bot orchestrator."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from unittest.mock import AsyncMock

import pytest

from photo_echo.config.models import AppConfig, GatewayConfig
from photo_echo.gateway.models import Batch, Event
from photo_echo.pipeline.runner import EchoBot


def _config(**overrides: object) -> AppConfig:
    return AppConfig(gateway=GatewayConfig(token="1:test"), **overrides)


def _gateway() -> AsyncMock:
    gateway = AsyncMock()
    gateway.health.return_value = {"type": "telegram", "status": "running"}
    gateway.fetch_artifact.return_value = b"img"
    return gateway


class TestEchoBot:
    async def test_run_wires_gateway_and_processor(self):
        gateway = _gateway()
        photo = Event(update_id=5, chat_id=3, message_id=8, artifact_ref="f")

        async def fetch_batch(cursor: int, wait_seconds: int) -> Batch:
            if cursor == 0:
                return Batch(events=(photo,))
            bot.stop()
            return Batch()

        gateway.fetch_batch.side_effect = fetch_batch
        bot = EchoBot(_config(), gateway=gateway)

        await asyncio.wait_for(bot.run(), timeout=2.0)

        gateway.start.assert_awaited_once()
        gateway.stop.assert_awaited_once()
        gateway.submit_artifact.assert_awaited_once_with(b"img", 3, 8)
        assert bot.loop.cursor == 6

    async def test_gateway_stopped_when_loop_crashes(self):
        gateway = _gateway()
        bot = EchoBot(_config(), gateway=gateway)
        bot.loop.run = AsyncMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]

        with pytest.raises(RuntimeError, match="boom"):
            await bot.run()

        gateway.stop.assert_awaited_once()

    @pytest.mark.skipif(sys.platform == "win32", reason="needs unix signal handlers")
    @pytest.mark.parametrize("signum", [signal.SIGTERM, signal.SIGINT])
    async def test_signal_stops_after_current_round(self, signum: signal.Signals):
        gateway = _gateway()
        photo = Event(update_id=11, chat_id=3, message_id=8, artifact_ref="f")

        async def fetch_batch(cursor: int, wait_seconds: int) -> Batch:
            if cursor == 0:
                os.kill(os.getpid(), signum)
                return Batch(events=(photo,))
            await asyncio.sleep(60)
            return Batch()

        gateway.fetch_batch.side_effect = fetch_batch
        bot = EchoBot(_config(), gateway=gateway)

        await asyncio.wait_for(bot.run(), timeout=5.0)

        assert bot.loop.stopping is True
        gateway.submit_artifact.assert_awaited_once_with(b"img", 3, 8)
        assert bot.loop.cursor == 12
        gateway.stop.assert_awaited_once()
        assert asyncio.get_running_loop().remove_signal_handler(signum) is False

    async def test_health_combines_components(self):
        gateway = _gateway()
        bot = EchoBot(_config(), gateway=gateway)

        health = await bot.health()

        assert health["gateway"]["status"] == "running"
        assert health["poller"]["cursor"] == 0
        assert health["poller"]["status"] == "stopped"

    async def test_health_server_started_and_stopped(self):
        gateway = _gateway()

        async def fetch_batch(cursor: int, wait_seconds: int) -> Batch:
            assert bot._health_server is not None
            bot.stop()
            return Batch()

        gateway.fetch_batch.side_effect = fetch_batch
        bot = EchoBot(_config(health_enabled=True, health_port=0), gateway=gateway)

        await asyncio.wait_for(bot.run(), timeout=2.0)

        assert bot._health_server is None
