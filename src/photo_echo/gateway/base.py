"""Remote gateway protocol consumed by the poll-dispatch loop.

The loop and the event processor only depend on these signatures, so tests
and alternative transports can plug in without touching core code.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from photo_echo.gateway.models import Batch


@runtime_checkable
class RemoteGateway(Protocol):
    """Protocol every outbound gateway must satisfy."""

    async def fetch_batch(self, cursor: int, wait_seconds: int) -> Batch:
        """Long-poll for events with identifier >= *cursor*."""
        ...

    async def fetch_artifact(self, reference: str) -> bytes:
        """Resolve *reference* and download the artifact bytes."""
        ...

    async def submit_artifact(
        self, artifact: bytes, destination: int, correlation_id: int
    ) -> dict[str, Any]:
        """Upload *artifact* to *destination*, replying to *correlation_id*."""
        ...
