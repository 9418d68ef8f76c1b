"""WebSocket transport used by signaling clients."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

MessageHandler = Callable[[Any], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]

logger = logging.getLogger(__name__)


class TransportClosedError(RuntimeError):
    """Raised when sending on a transport that is not open."""


class SignalingTransport:
    """Persistent message connection to the relay.

    ``on_message`` receives each decoded JSON frame in arrival order;
    ``on_close`` fires once when the connection drops without :meth:`close`
    having been called.
    """

    def __init__(self, url: str, *, open_timeout: float = 10.0) -> None:
        self.url = url
        self._open_timeout = open_timeout
        self._ws: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    async def open(self, on_message: MessageHandler, on_close: CloseHandler) -> None:
        self._ws = await websockets.connect(self.url, open_timeout=self._open_timeout)
        logger.info("Connected to %s", self.url)
        self._reader = asyncio.create_task(self._receive_loop(on_message, on_close))

    async def send(self, message: dict) -> None:
        if not self.is_open:
            raise TransportClosedError(f"transport to {self.url} is closed")
        await self._ws.send(json.dumps(message))

    async def close(self) -> None:
        """Close voluntarily; ``on_close`` is not invoked."""

        if self._closing:
            return
        self._closing = True
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader
        if self._ws is not None:
            await self._ws.close()

    async def _receive_loop(self, on_message: MessageHandler, on_close: CloseHandler) -> None:
        try:
            async for raw in self._ws:
                try:
                    payload = json.loads(raw)
                except ValueError:
                    logger.warning("Discarding undecodable frame from %s", self.url)
                    continue
                try:
                    await on_message(payload)
                except Exception:  # noqa: BLE001 - keep reading after a handler failure
                    logger.exception("Message handler failed for %s frame", payload.get("type") if isinstance(payload, dict) else "?")
        except ConnectionClosed as exc:
            logger.warning("Connection to %s lost: %s", self.url, exc)
        finally:
            if not self._closing:
                self._closing = True
                logger.info("Disconnected from %s", self.url)
                await on_close()
