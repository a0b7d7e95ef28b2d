"""Async HTTP gateway for the Telegram Bot API."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from photo_echo.config.models import GatewayConfig
from photo_echo.errors import (
    NotFoundError,
    RemoteError,
    StartupError,
    TransportError,
)
from photo_echo.gateway.models import Batch

logger = structlog.get_logger()

_PHOTO_FILENAME = "image.jpg"
_PHOTO_CONTENT_TYPE = "image/jpeg"


class TelegramGateway:
    """Thin async wrapper around the Bot API methods the bot needs.

    One ``httpx.AsyncClient`` is shared by the poll loop and every event task.
    The gateway never retries; callers own the retry policy.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if config.token is None:
            msg = "TelegramGateway requires a bot token"
            raise StartupError(msg)
        self._config = config
        self._token = config.token.get_secret_value()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        try:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self._config.user_agent},
                timeout=httpx.Timeout(
                    self._config.request_timeout_seconds,
                    connect=self._config.connect_timeout_seconds,
                ),
                transport=self._transport,
            )
        except Exception as exc:
            msg = f"Failed to create http client: {exc}"
            raise StartupError(msg) from exc
        logger.info("gateway.started", api_url=self._config.api_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("gateway.stopped")

    async def __aenter__(self) -> TelegramGateway:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._client is not None

    # -- URLs ------------------------------------------------------------------

    def _method_url(self, method: str) -> str:
        return f"{self._config.api_url}/bot{self._token}/{method}"

    def _file_url(self, file_path: str) -> str:
        return f"{self._config.file_url}/bot{self._token}/{file_path.lstrip('/')}"

    def _redact(self, text: str) -> str:
        return text.replace(self._token, "<token>")

    # -- Transport -------------------------------------------------------------

    async def _send(
        self,
        method: str,
        http_method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        if self._client is None:
            msg = "TelegramGateway not started — call start() first"
            raise RuntimeError(msg)
        started = time.monotonic()
        try:
            response = await self._client.request(http_method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(
                method, f"request timed out ({type(exc).__name__})"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                method, self._redact(f"{type(exc).__name__}: {exc}")
            ) from exc
        logger.debug(
            "gateway.call",
            method=method,
            status=response.status_code,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return response

    @staticmethod
    def _unwrap(method: str, response: httpx.Response) -> Any:
        """Return ``result`` from an ``{"ok": ..., "result": ...}`` envelope."""
        try:
            body = response.json()
        except ValueError:
            if response.is_error:
                raise TransportError(
                    method, f"HTTP {response.status_code} with non-JSON body"
                ) from None
            raise RemoteError(
                method,
                {"status_code": response.status_code, "body": response.text[:500]},
            ) from None

        if not isinstance(body, dict) or "ok" not in body:
            if response.is_error:
                raise TransportError(method, f"HTTP {response.status_code}")
            raise RemoteError(method, body)
        if body["ok"] is not True:
            raise RemoteError(method, body)
        return body.get("result")

    async def call_method(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """POST *params* as JSON to a Bot API method and return its result."""
        kwargs: dict[str, Any] = {"json": params or {}}
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(
                timeout, connect=self._config.connect_timeout_seconds
            )
        response = await self._send(method, "POST", self._method_url(method), **kwargs)
        return self._unwrap(method, response)

    # -- Operations ------------------------------------------------------------

    async def get_me(self) -> dict[str, Any]:
        """Return the bot's own user object (credential check)."""
        result = await self.call_method("getMe")
        if not isinstance(result, dict):
            raise RemoteError("getMe", {"result": result})
        return result

    async def fetch_batch(self, cursor: int, wait_seconds: int) -> Batch:
        """Long-poll ``getUpdates`` for updates with ``update_id >= cursor``.

        An empty result after the wait expires is a normal empty batch.
        """
        params = {
            "offset": cursor,
            "timeout": wait_seconds,
            "allowed_updates": list(self._config.allowed_updates),
        }
        result = await self.call_method(
            "getUpdates",
            params,
            timeout=self._config.poll_request_timeout_seconds,
        )
        if not isinstance(result, list):
            raise RemoteError("getUpdates", {"result": result})
        try:
            return Batch.from_updates(result)
        except ValueError as exc:
            raise RemoteError("getUpdates", {"result": result, "error": str(exc)}) from exc

    async def fetch_artifact(self, reference: str) -> bytes:
        """Resolve a ``file_id`` with ``getFile`` and download its bytes."""
        result = await self.call_method("getFile", {"file_id": reference})
        file_path = result.get("file_path") if isinstance(result, dict) else None
        if not isinstance(file_path, str) or not file_path:
            raise NotFoundError("getFile", f"no file_path for file_id {reference!r}")

        response = await self._send("downloadFile", "GET", self._file_url(file_path))
        if response.status_code == 404:
            raise NotFoundError("downloadFile", f"file {file_path!r} not found")
        if response.is_error:
            raise TransportError("downloadFile", f"HTTP {response.status_code}")
        return response.content

    async def submit_artifact(
        self, artifact: bytes, destination: int, correlation_id: int
    ) -> dict[str, Any]:
        """Send *artifact* as a photo to chat *destination* replying to a message."""
        data = {
            "chat_id": str(destination),
            "reply_to_message_id": str(correlation_id),
        }
        files = {"photo": (_PHOTO_FILENAME, artifact, _PHOTO_CONTENT_TYPE)}
        response = await self._send(
            "sendPhoto", "POST", self._method_url("sendPhoto"), data=data, files=files
        )
        result = self._unwrap("sendPhoto", response)
        return result if isinstance(result, dict) else {"result": result}

    async def health(self) -> dict[str, Any]:
        return {
            "type": "telegram",
            "status": "running" if self._client is not None else "stopped",
            "api_url": self._config.api_url,
        }
