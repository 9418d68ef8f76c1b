"""Dispatch inbound signaling frames to the registry and the addressed peers."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from ..schemas import signaling as schemas
from .connection import ConnectionContext, ConnectionHandle, Role
from .lifecycle import release_viewers
from .registry import RoomNotFoundError, RoomRegistry

ROOM_NOT_FOUND_MESSAGE = "Room not found"

logger = logging.getLogger(__name__)

Handler = Callable[[ConnectionContext, Any], Awaitable[None]]


class MessageRouter:
    """Interpret each frame by its ``type`` and forward it by role.

    Addressing misses are dropped silently: an offer, answer or candidate whose
    target is not registered (or whose handle is closed) reaches nobody.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self._handlers: Dict[str, Handler] = {
            "create-room": self._create_room,
            "join-room": self._join_room,
            "offer": self._offer,
            "answer": self._answer,
            "ice-candidate": self._ice_candidate,
        }

    async def handle(self, context: ConnectionContext, payload: Any) -> None:
        """Validate and dispatch one decoded frame from ``context``.

        Raises :class:`~screenrelay.schemas.signaling.MalformedMessageError`
        for frames that fail validation; unknown types are ignored.
        """

        message = schemas.parse_client_message(payload)
        if message is None:
            logger.debug("Ignoring unsupported message type %r", payload.get("type"))
            return
        await self._handlers[message.type](context, message)

    async def _create_room(self, context: ConnectionContext, message: schemas.CreateRoom) -> None:
        claim = await self.registry.create_room(message.room_id, context.handle)
        if claim.evicted is not None:
            release_viewers(claim.evicted)
        context.role = Role.BROADCASTER
        context.room_id = message.room_id
        context.handle.send(schemas.RoomCreated(room_id=message.room_id).dump())

    async def _join_room(self, context: ConnectionContext, message: schemas.JoinRoom) -> None:
        try:
            membership = await self.registry.join_room(message.room_id, context.handle, message.viewer_id)
        except RoomNotFoundError:
            logger.info("Join for unknown room %s from %s", message.room_id, context.connection_id)
            context.handle.send(schemas.ErrorMessage(message=ROOM_NOT_FOUND_MESSAGE).dump())
            return

        context.role = Role.VIEWER
        context.room_id = message.room_id
        context.viewer_id = membership.viewer_id
        context.handle.send(schemas.JoinedRoom(viewer_id=membership.viewer_id).dump())
        membership.broadcaster.send(
            schemas.ViewerJoined(viewer_id=membership.viewer_id, count=membership.count).dump()
        )

    async def _offer(self, context: ConnectionContext, message: schemas.SendOffer) -> None:
        if context.role is not Role.BROADCASTER or context.room_id is None:
            return
        target = self.registry.lookup_viewer(context.room_id, message.target)
        relayed = schemas.RelayedOffer(offer=message.offer, from_=schemas.BROADCASTER_KEY)
        self._forward(target, relayed.dump())

    async def _answer(self, context: ConnectionContext, message: schemas.SendAnswer) -> None:
        if context.role is not Role.VIEWER or context.room_id is None or context.viewer_id is None:
            return
        target = self.registry.lookup_broadcaster(context.room_id)
        relayed = schemas.RelayedAnswer(answer=message.answer, from_=context.viewer_id)
        self._forward(target, relayed.dump())

    async def _ice_candidate(self, context: ConnectionContext, message: schemas.SendIceCandidate) -> None:
        if context.room_id is None:
            return
        if context.role is Role.BROADCASTER:
            target = self.registry.lookup_viewer(context.room_id, message.target)
            sender = schemas.BROADCASTER_KEY
        elif context.role is Role.VIEWER and context.viewer_id is not None:
            target = self.registry.lookup_broadcaster(context.room_id)
            sender = context.viewer_id
        else:
            return
        relayed = schemas.RelayedIceCandidate(candidate=message.candidate, from_=sender)
        self._forward(target, relayed.dump())

    def _forward(self, target: ConnectionHandle | None, message: dict) -> bool:
        if target is None or not target.send(message):
            logger.debug("Dropping %s: target unavailable", message["type"])
            return False
        return True
