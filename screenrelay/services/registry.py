"""In-memory room registry for the signaling relay."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict
from uuid import uuid4

from .connection import ConnectionHandle

logger = logging.getLogger(__name__)


class RoomNotFoundError(LookupError):
    """Raised when a participant addresses a room that is not registered."""

    def __init__(self, room_id: str) -> None:
        super().__init__(room_id)
        self.room_id = room_id


@dataclass(slots=True)
class RoomState:
    """One broadcaster and the viewers currently attached to it."""

    room_id: str
    broadcaster: ConnectionHandle
    viewers: Dict[str, ConnectionHandle] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Membership:
    """Snapshot of a room taken while the registry lock was held."""

    room_id: str
    viewer_id: str
    count: int
    broadcaster: ConnectionHandle


@dataclass(slots=True, frozen=True)
class RoomClaim:
    """Outcome of ``create_room``: whether state changed and what it displaced."""

    created: bool
    evicted: RoomState | None = None


def generate_viewer_id() -> str:
    return uuid4().hex[:12]


class RoomRegistry:
    """Own the room map and serialize every membership change."""

    def __init__(self) -> None:
        self._rooms: Dict[str, RoomState] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> RoomState | None:
        return self._rooms.get(room_id)

    async def create_room(self, room_id: str, broadcaster: ConnectionHandle) -> RoomClaim:
        """Register ``room_id`` for ``broadcaster``.

        Re-announcing a room that already has an open broadcaster leaves it
        untouched. A room whose broadcaster handle has gone stale is replaced
        by a fresh one and handed back as ``evicted`` so the caller can release
        the viewers that were attached to it.
        """

        async with self._lock:
            room = self._rooms.get(room_id)
            if room is not None and room.broadcaster.is_open:
                return RoomClaim(created=False)
            self._rooms[room_id] = RoomState(room_id=room_id, broadcaster=broadcaster)
            if room is not None:
                logger.info(
                    "Room %s taken over by %s, evicting %d viewer(s)",
                    room_id,
                    broadcaster.connection_id,
                    len(room.viewers),
                )
            else:
                logger.info("Room created: %s", room_id)
            return RoomClaim(created=True, evicted=room)

    async def join_room(
        self,
        room_id: str,
        viewer: ConnectionHandle,
        viewer_id: str | None = None,
    ) -> Membership:
        """Attach ``viewer`` to a room, reclaiming the slot if ``viewer_id`` is known.

        Raises :class:`RoomNotFoundError` if the room is absent or its
        broadcaster is already gone.
        """

        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None or not room.broadcaster.is_open:
                raise RoomNotFoundError(room_id)
            assigned = viewer_id or generate_viewer_id()
            room.viewers[assigned] = viewer
            logger.info("Viewer %s joined room %s", assigned, room_id)
            return Membership(room_id, assigned, len(room.viewers), room.broadcaster)

    async def remove_viewer(
        self,
        room_id: str,
        viewer_id: str,
        handle: ConnectionHandle | None = None,
    ) -> Membership | None:
        """Detach a viewer and return the post-removal snapshot.

        When ``handle`` is given the slot is only cleared if it still belongs to
        that handle, so a connection that lost its slot to a reconnect cannot
        evict its successor. Returns ``None`` when nothing was removed.
        """

        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return None
            current = room.viewers.get(viewer_id)
            if current is None or (handle is not None and current is not handle):
                return None
            del room.viewers[viewer_id]
            logger.info("Viewer %s left room %s", viewer_id, room_id)
            return Membership(room_id, viewer_id, len(room.viewers), room.broadcaster)

    async def remove_room(
        self,
        room_id: str,
        broadcaster: ConnectionHandle | None = None,
    ) -> RoomState | None:
        """Delete a room and hand back its final state for teardown."""

        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None or (broadcaster is not None and room.broadcaster is not broadcaster):
                return None
            del self._rooms[room_id]
            logger.info("Room closed: %s", room_id)
            return room

    def lookup_broadcaster(self, room_id: str) -> ConnectionHandle | None:
        room = self._rooms.get(room_id)
        return room.broadcaster if room is not None else None

    def lookup_viewer(self, room_id: str, viewer_id: str | None) -> ConnectionHandle | None:
        room = self._rooms.get(room_id)
        if room is None or viewer_id is None:
            return None
        return room.viewers.get(viewer_id)
