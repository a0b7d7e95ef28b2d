"""Unit tests for the photo echo event processor."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from photo_echo.errors import NotFoundError, RemoteError
from photo_echo.gateway.models import Event
from photo_echo.pipeline.processor import EchoProcessor, EventHandler, Outcome


def _gateway() -> AsyncMock:
    gateway = AsyncMock()
    gateway.fetch_artifact.return_value = b"photo-bytes"
    gateway.submit_artifact.return_value = {"message_id": 1}
    return gateway


def _photo_event(update_id: int = 1) -> Event:
    return Event(update_id=update_id, chat_id=9, message_id=5, artifact_ref="file-1")


class TestEchoProcessor:
    def test_satisfies_event_handler(self):
        assert isinstance(EchoProcessor(_gateway()), EventHandler)

    async def test_event_without_artifact_is_noop(self):
        gateway = _gateway()
        outcome = await EchoProcessor(gateway).process(Event(update_id=1, chat_id=9))

        assert outcome == Outcome.SKIPPED
        gateway.fetch_artifact.assert_not_awaited()
        gateway.submit_artifact.assert_not_awaited()

    async def test_photo_is_fetched_and_echoed(self):
        gateway = _gateway()
        outcome = await EchoProcessor(gateway).process(_photo_event())

        assert outcome == Outcome.DELIVERED
        gateway.fetch_artifact.assert_awaited_once_with("file-1")
        gateway.submit_artifact.assert_awaited_once_with(b"photo-bytes", 9, 5)

    async def test_fetch_failure_skips_submit(self):
        gateway = _gateway()
        gateway.fetch_artifact.side_effect = NotFoundError("getFile", "gone")

        with pytest.raises(NotFoundError):
            await EchoProcessor(gateway).process(_photo_event())

        gateway.submit_artifact.assert_not_awaited()

    async def test_submit_failure_propagates(self):
        gateway = _gateway()
        gateway.submit_artifact.side_effect = RemoteError(
            "sendPhoto", {"ok": False, "description": "blocked"}
        )

        with pytest.raises(RemoteError):
            await EchoProcessor(gateway).process(_photo_event())
