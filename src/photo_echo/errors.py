"""Error taxonomy shared by the gateway, the loop and startup code."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for every failure of an outbound gateway call."""

    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method


class TransportError(GatewayError):
    """Connectivity, timeout, or unexpected HTTP-level failure."""


class RemoteError(GatewayError):
    """The remote service answered but reported a logical failure.

    ``payload`` holds the raw response envelope for diagnostics.
    """

    def __init__(self, method: str, payload: Any) -> None:
        self.payload = payload
        self.error_code: int | None = None
        self.description: str | None = None
        if isinstance(payload, dict):
            code = payload.get("error_code")
            self.error_code = code if isinstance(code, int) else None
            desc = payload.get("description")
            self.description = str(desc) if desc is not None else None
        detail = self.description or repr(payload)
        if self.error_code is not None:
            detail = f"[{self.error_code}] {detail}"
        super().__init__(method, f"remote call returned error: {detail}")


class NotFoundError(GatewayError):
    """A payload reference could not be resolved to a retrievable artifact."""


class StartupError(Exception):
    """Fatal configuration or construction failure; the loop must not start."""
