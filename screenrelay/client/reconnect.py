"""Exponential-backoff reconnection for signaling clients."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class ReconnectExhaustedError(RuntimeError):
    """Raised once every allowed reconnection attempt has failed."""


class ReconnectManager:
    """Schedule transport re-establishment after an unexpected disconnect.

    Attempt ``n`` (zero-based) waits ``min(base_delay * 2**n, max_delay)``
    seconds. A successful ``connect`` must call :meth:`reset`. After
    ``max_attempts`` scheduled attempts the next :meth:`schedule` reports
    exhaustion through ``on_exhausted`` and stops.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[None]],
        *,
        base_delay: float = 1.0,
        max_delay: float = 15.0,
        max_attempts: int = 10,
        on_exhausted: Callable[[ReconnectExhaustedError], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._connect = connect
        self._sleep = sleep
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self._on_exhausted = on_exhausted
        self.attempt = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def schedule(self) -> float | None:
        """Queue the next attempt and return its delay, or ``None`` if none was queued."""

        if self.pending:
            return None
        if self.attempt >= self.max_attempts:
            error = ReconnectExhaustedError(f"gave up after {self.max_attempts} reconnection attempts")
            logger.error("%s", error)
            if self._on_exhausted is not None:
                self._on_exhausted(error)
            return None
        delay = self.delay_for(self.attempt)
        self.attempt += 1
        logger.info("Reconnecting in %.1fs (attempt %d/%d)", delay, self.attempt, self.max_attempts)
        self._task = asyncio.create_task(self._worker(delay))
        return delay

    def reset(self) -> None:
        self.attempt = 0
        self.cancel()

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _worker(self, delay: float) -> None:
        # stays pending through connect so cancel() can interrupt an open in flight
        await self._sleep(delay)
        try:
            await self._connect()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - any failure counts as a missed attempt
            logger.warning("Reconnect attempt %d failed: %s", self.attempt, exc)
            self._release()
            self.schedule()
        else:
            self._release()

    def _release(self) -> None:
        if self._task is asyncio.current_task():
            self._task = None
