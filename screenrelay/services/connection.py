"""Per-connection plumbing for signaling participants."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

SendCallable = Callable[[dict], Awaitable[None]]
CloseCallable = Callable[[int], Awaitable[None]]

logger = logging.getLogger(__name__)

ABORT_CLOSE_CODE = 1011

_CLOSE = object()


class ConnectionHandle:
    """Bidirectional channel to one participant with a bounded outbound queue.

    ``send`` never blocks: frames are queued and written by a dedicated task so
    a slow participant cannot stall the router. A full queue or a closed handle
    drops the frame and reports ``False``. A failed or timed-out write closes
    the transport with ``ABORT_CLOSE_CODE`` so its owner tears the session down.
    """

    def __init__(
        self,
        connection_id: str,
        send: SendCallable,
        close: CloseCallable | None = None,
        *,
        max_queue: int = 64,
        send_timeout: float = 5.0,
    ) -> None:
        self.connection_id = connection_id
        self._send = send
        self._close = close
        self._max_queue = max_queue
        self._send_timeout = send_timeout
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._writer: asyncio.Task[None] | None = None
        self._open = True

    def __repr__(self) -> str:
        state = "open" if self._open else "closed"
        return f"<ConnectionHandle {self.connection_id} {state}>"

    @property
    def is_open(self) -> bool:
        return self._open

    def start(self) -> None:
        """Spawn the writer task on the running loop."""

        if self._writer is None:
            self._writer = asyncio.create_task(self._run(), name=f"writer-{self.connection_id}")

    def send(self, message: dict) -> bool:
        """Queue a frame for delivery; return whether it was accepted."""

        if not self._open:
            return False
        if self._queue.qsize() >= self._max_queue:
            logger.warning("Outbound queue full for %s, dropping %s", self.connection_id, message.get("type"))
            return False
        self._queue.put_nowait(message)
        self.start()
        return True

    def close(self, code: int = 1000) -> None:
        """Flush queued frames, then close the underlying transport."""

        if not self._open:
            return
        self._open = False
        self._queue.put_nowait((_CLOSE, code))
        self.start()

    def mark_closed(self) -> None:
        """Record that the transport is gone; later sends become drops."""

        self._open = False

    async def drain(self) -> None:
        """Wait until every queued frame has been handled."""

        if self._writer is not None:
            await self._queue.join()

    async def shutdown(self) -> None:
        """Stop the writer task, discarding anything still queued."""

        self._open = False
        writer, self._writer = self._writer, None
        if writer is None or writer.done():
            return
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        failed = False
        while True:
            item = await self._queue.get()
            closing = isinstance(item, tuple) and item[0] is _CLOSE
            try:
                if closing:
                    if self._close is not None and not failed:
                        await asyncio.wait_for(self._close(item[1]), self._send_timeout)
                    return
                if failed:
                    continue
                await asyncio.wait_for(self._send(item), self._send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - a dead peer must not take the writer down
                logger.warning("Send to %s failed: %s", self.connection_id, exc)
                self._open = False
                if closing:
                    return
                if not failed:
                    failed = True
                    await self._abort()
            finally:
                self._queue.task_done()

    async def _abort(self) -> None:
        # the transport owner sees the close and runs its teardown
        if self._close is None:
            return
        try:
            await asyncio.wait_for(self._close(ABORT_CLOSE_CODE), self._send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Closing %s after a failed send also failed: %s", self.connection_id, exc)


class Role(str, enum.Enum):
    UNASSIGNED = "unassigned"
    BROADCASTER = "broadcaster"
    VIEWER = "viewer"


@dataclass(slots=True)
class ConnectionContext:
    """Mutable per-connection state written by the router and read on close."""

    handle: ConnectionHandle
    role: Role = Role.UNASSIGNED
    room_id: str | None = None
    viewer_id: str | None = None
    closed: bool = field(default=False)

    @property
    def connection_id(self) -> str:
        return self.handle.connection_id
