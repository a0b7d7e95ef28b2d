"""Per-event processing: echo a received photo back to its chat."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

import structlog

from photo_echo.gateway.base import RemoteGateway
from photo_echo.gateway.models import Event

logger = structlog.get_logger()


class Outcome(StrEnum):
    """How a single event task finished."""

    SKIPPED = "skipped"
    DELIVERED = "delivered"
    FAILED = "failed"


@runtime_checkable
class EventHandler(Protocol):
    """Processes one event end-to-end; may raise on failure."""

    async def process(self, event: Event) -> Outcome:
        ...


class EchoProcessor:
    """Downloads the photo attached to an event and replies with it."""

    def __init__(self, gateway: RemoteGateway) -> None:
        self._gateway = gateway

    async def process(self, event: Event) -> Outcome:
        logger.info("processor.update", update_id=event.update_id, update=event.raw)
        if not event.has_artifact:
            return Outcome.SKIPPED

        # has_artifact guarantees these are set
        assert event.artifact_ref is not None
        assert event.chat_id is not None
        assert event.message_id is not None

        artifact = await self._gateway.fetch_artifact(event.artifact_ref)
        await self._gateway.submit_artifact(artifact, event.chat_id, event.message_id)
        logger.debug(
            "processor.delivered",
            update_id=event.update_id,
            chat_id=event.chat_id,
            size=len(artifact),
        )
        return Outcome.DELIVERED
