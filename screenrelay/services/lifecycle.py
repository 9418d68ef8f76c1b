"""Room cleanup when a signaling connection goes away."""
from __future__ import annotations

import logging

from ..schemas import signaling as schemas
from .connection import ConnectionContext, Role
from .registry import RoomRegistry, RoomState

logger = logging.getLogger(__name__)


def release_viewers(room: RoomState) -> None:
    """Tell every viewer of a removed room that it is over, then close them."""

    notice = schemas.BroadcasterLeft().dump()
    for viewer in room.viewers.values():
        viewer.send(notice)
        viewer.close()


class ConnectionLifecycleManager:
    """Cascade a closed connection into registry updates and notifications."""

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry

    async def on_close(self, context: ConnectionContext) -> None:
        """Release everything ``context`` held. Safe to call more than once."""

        if context.closed:
            return
        context.closed = True
        context.handle.mark_closed()

        if context.role is Role.BROADCASTER and context.room_id is not None:
            await self._close_room(context)
        elif context.role is Role.VIEWER and context.room_id is not None and context.viewer_id is not None:
            await self._leave_room(context)

    async def _close_room(self, context: ConnectionContext) -> None:
        room = await self.registry.remove_room(context.room_id, context.handle)
        if room is None:
            return
        logger.info("Broadcaster left room %s, evicting %d viewer(s)", room.room_id, len(room.viewers))
        release_viewers(room)

    async def _leave_room(self, context: ConnectionContext) -> None:
        membership = await self.registry.remove_viewer(context.room_id, context.viewer_id, context.handle)
        if membership is None or not membership.broadcaster.is_open:
            return
        membership.broadcaster.send(
            schemas.ViewerLeft(viewer_id=membership.viewer_id, count=membership.count).dump()
        )
