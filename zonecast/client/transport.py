import asyncio
import json
import logging
from typing import Any, Protocol

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from pydantic import ValidationError

from zonecast.schemas.schedule import ActiveItem

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The push connection could not be opened or was lost."""


class ContentFetchError(Exception):
    """A pull of the active set failed."""


class PushTransport(Protocol):
    async def connect(self) -> None: ...

    async def send(self, message: dict[str, Any]) -> None: ...

    async def receive(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class ContentSource(Protocol):
    async def fetch_active_set(self, zone: str) -> list[ActiveItem]: ...


class WebSocketTransport:
    """JSON messages over the server's `/ws/updates` socket."""

    def __init__(self, url: str, open_timeout: float = 5.0) -> None:
        self._url = url
        self._open_timeout = open_timeout
        self._ws = None

    async def connect(self) -> None:
        await self.close()
        try:
            self._ws = await websockets.connect(self._url, open_timeout=self._open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise TransportError(f"connect to {self._url} failed: {exc}") from exc

    async def send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError("not connected")
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise TransportError(f"connection closed: {exc}") from exc

    async def receive(self) -> dict[str, Any]:
        while True:
            if self._ws is None:
                raise TransportError("not connected")
            try:
                raw = await self._ws.recv()
            except ConnectionClosed as exc:
                raise TransportError(f"connection closed: {exc}") from exc
            try:
                message = json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                logger.debug("Skipping malformed frame")
                continue
            if isinstance(message, dict):
                return message

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException):
                pass


class HttpContentSource:
    """Pulls the active set from `GET /schedule/{zone}`."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"X-API-Key": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, headers=headers)

    async def fetch_active_set(self, zone: str) -> list[ActiveItem]:
        try:
            response = await self._client.get(f"/schedule/{zone}")
            response.raise_for_status()
            data = response.json()
            return [ActiveItem.model_validate(item) for item in data.get("items", [])]
        except httpx.HTTPError as exc:
            raise ContentFetchError(f"fetch for zone {zone} failed: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise ContentFetchError(f"invalid active set for zone {zone}: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
