"""Client-side driver for the broadcaster and viewer negotiation flows."""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict

from websockets.exceptions import ConnectionClosed

from ..core.config import Settings, settings as default_settings
from ..schemas import signaling as schemas
from .media import MediaAcquisitionError, MediaSource
from .reconnect import ReconnectExhaustedError, ReconnectManager
from .session import NegotiationError, NegotiationSession, create_peer_connection
from .share import generate_room_code, qr_image_url, share_url
from .transport import SignalingTransport, TransportClosedError

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Dict[str, Any]], None]
TransportFactory = Callable[[str], SignalingTransport]


class ClientRole(str, enum.Enum):
    IDLE = "idle"
    BROADCASTER = "broadcaster"
    VIEWER = "viewer"


class ClientNegotiationController:
    """Drive one participant through room setup, negotiation and reconnection.

    A broadcaster keeps one :class:`NegotiationSession` per viewer id; a viewer
    keeps a single session keyed ``"broadcaster"``. Everything runs on the
    caller's event loop, and frames are handled one at a time in arrival order.

    ``on_event`` receives ``(name, data)`` notifications for the embedding UI:
    ``room-created``, ``viewer-count``, ``joined``, ``track``, ``error``,
    ``broadcaster-left``, ``disconnected``, ``connected`` and ``fatal``.
    """

    def __init__(
        self,
        url: str,
        *,
        media_source: MediaSource | None = None,
        transport_factory: TransportFactory = SignalingTransport,
        peer_connection_factory: Callable[[], Any] | None = None,
        on_event: EventHandler | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or default_settings
        self.url = url
        self.media_source = media_source
        self._settings = settings
        self._transport_factory = transport_factory
        self._pc_factory = peer_connection_factory or (lambda: create_peer_connection(settings.ice_servers))
        self._on_event = on_event

        self.role = ClientRole.IDLE
        self.room_id: str | None = None
        self.viewer_id: str | None = None
        self.sessions: Dict[str, NegotiationSession] = {}
        self._tracks: list[Any] = []
        self._transport: SignalingTransport | None = None
        self._done: asyncio.Future[None] | None = None

        self.reconnect = ReconnectManager(
            self._reconnect,
            base_delay=settings.reconnect_base_delay,
            max_delay=settings.reconnect_max_delay,
            max_attempts=settings.reconnect_max_attempts,
            on_exhausted=self._give_up,
        )
        self._handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {
            "room-created": self._room_created,
            "joined-room": self._joined_room,
            "viewer-joined": self._viewer_joined,
            "viewer-left": self._viewer_left,
            "offer": self._offer,
            "answer": self._answer,
            "ice-candidate": self._ice_candidate,
            "broadcaster-left": self._broadcaster_left,
            "error": self._error,
        }

    @property
    def connected(self) -> bool:
        return self._transport is not None and self._transport.is_open

    async def start_broadcasting(self, room_id: str | None = None) -> str:
        """Acquire media, open the transport and announce a room.

        Raises :class:`MediaAcquisitionError` before touching the network if
        the media source cannot be opened.
        """

        self._require_idle()
        if self.media_source is None:
            raise MediaAcquisitionError("no media source configured")
        self._tracks = await self.media_source.acquire()
        self.role = ClientRole.BROADCASTER
        self.room_id = room_id or generate_room_code()
        self._done = asyncio.get_running_loop().create_future()
        try:
            await self._connect()
        except Exception:
            await self.stop()
            raise
        return self.room_id

    async def join(self, room_id: str, viewer_id: str | None = None) -> None:
        """Open the transport and ask to join ``room_id`` as a viewer."""

        self._require_idle()
        self.role = ClientRole.VIEWER
        self.room_id = room_id.strip().upper()
        self.viewer_id = viewer_id
        self._done = asyncio.get_running_loop().create_future()
        try:
            await self._connect()
        except Exception:
            await self.stop()
            raise

    async def stop(self) -> None:
        """Voluntary teardown: close every session, then the transport.

        Any pending reconnect is cancelled so nothing fires afterwards.
        """

        self.reconnect.cancel()
        self.role = ClientRole.IDLE
        sessions, self.sessions = list(self.sessions.values()), {}
        for session in sessions:
            await session.close()
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        if self._tracks and self.media_source is not None:
            self.media_source.release()
        self._tracks = []
        self.room_id = None
        self.viewer_id = None
        if self._done is not None and not self._done.done():
            self._done.set_result(None)

    async def wait_closed(self) -> None:
        """Block until :meth:`stop` runs; raises if reconnection gave up."""

        if self._done is not None:
            await self._done

    # transport

    async def _connect(self) -> bool:
        transport = self._transport_factory(self.url)
        await transport.open(self._handle_frame, self._transport_closed)
        if self.role is ClientRole.IDLE:
            # stopped while the open was in flight
            await transport.close()
            return False
        self._transport = transport
        self.reconnect.reset()
        await self._announce()
        return True

    async def _reconnect(self) -> None:
        if self.role is ClientRole.IDLE:
            return
        if await self._connect():
            self._emit("connected", {"roomId": self.room_id})

    async def _announce(self) -> None:
        if self.role is ClientRole.BROADCASTER and self.room_id and self._tracks:
            await self._send(schemas.CreateRoom(room_id=self.room_id))
        elif self.role is ClientRole.VIEWER and self.room_id:
            await self._send(schemas.JoinRoom(room_id=self.room_id, viewer_id=self.viewer_id))

    async def _transport_closed(self) -> None:
        self._transport = None
        if self.role is ClientRole.IDLE:
            return
        self._emit("disconnected", {"roomId": self.room_id})
        self.reconnect.schedule()

    def _give_up(self, error: ReconnectExhaustedError) -> None:
        self._emit("fatal", {"message": str(error)})
        if self._done is not None and not self._done.done():
            self._done.set_exception(error)

    async def _send(self, message: schemas.SignalMessage) -> None:
        if self._transport is None:
            logger.debug("Not connected, dropping %s", message.type)
            return
        try:
            await self._transport.send(message.dump())
        except (TransportClosedError, ConnectionClosed) as exc:
            logger.warning("Could not send %s: %s", message.type, exc)

    async def _handle_frame(self, payload: Any) -> None:
        try:
            message = schemas.parse_server_message(payload)
        except schemas.MalformedMessageError as exc:
            logger.warning("Discarding malformed frame: %s", exc)
            return
        if message is None:
            return
        await self._handlers[message.type](message)

    # sessions

    async def _open_session(self, peer_key: str) -> NegotiationSession:
        previous = self.sessions.pop(peer_key, None)
        if previous is not None:
            await previous.close()
        session = NegotiationSession(
            peer_key,
            self._pc_factory(),
            tracks=self._tracks if self.role is ClientRole.BROADCASTER else (),
            on_local_candidate=self._send_local_candidate,
            on_track=self._track_received if self.role is ClientRole.VIEWER else None,
        )
        self.sessions[peer_key] = session
        return session

    async def _close_session(self, peer_key: str) -> None:
        session = self.sessions.pop(peer_key, None)
        if session is not None:
            await session.close()

    async def _send_local_candidate(self, peer_key: str, candidate: dict) -> None:
        if self.role is ClientRole.BROADCASTER:
            await self._send(schemas.SendIceCandidate(candidate=candidate, target=peer_key))
        else:
            await self._send(schemas.SendIceCandidate(candidate=candidate))

    def _track_received(self, peer_key: str, track: Any) -> None:
        self._emit("track", {"peerKey": peer_key, "track": track})

    # handlers

    async def _room_created(self, message: schemas.RoomCreated) -> None:
        if self.role is not ClientRole.BROADCASTER:
            return
        self.room_id = message.room_id
        link = share_url(self._settings.public_origin, message.room_id)
        self._emit("room-created", {
            "roomId": message.room_id,
            "shareUrl": link,
            "qrUrl": qr_image_url(link, self._settings.qr_size),
        })

    async def _viewer_joined(self, message: schemas.ViewerJoined) -> None:
        if self.role is not ClientRole.BROADCASTER:
            return
        self._emit("viewer-count", {"count": message.count})
        session = await self._open_session(message.viewer_id)
        offer = await session.create_offer()
        await self._send(schemas.SendOffer(offer=offer, target=message.viewer_id))

    async def _viewer_left(self, message: schemas.ViewerLeft) -> None:
        if self.role is not ClientRole.BROADCASTER:
            return
        await self._close_session(message.viewer_id)
        self._emit("viewer-count", {"count": message.count})

    async def _joined_room(self, message: schemas.JoinedRoom) -> None:
        if self.role is not ClientRole.VIEWER:
            return
        self.viewer_id = message.viewer_id
        await self._open_session(schemas.BROADCASTER_KEY)
        self._emit("joined", {"roomId": self.room_id, "viewerId": message.viewer_id})

    async def _offer(self, message: schemas.RelayedOffer) -> None:
        session = self.sessions.get(message.from_)
        if self.role is not ClientRole.VIEWER or session is None:
            return
        answer = await session.accept_offer(message.offer)
        await self._send(schemas.SendAnswer(answer=answer))

    async def _answer(self, message: schemas.RelayedAnswer) -> None:
        session = self.sessions.get(message.from_)
        if self.role is not ClientRole.BROADCASTER or session is None:
            logger.debug("No session for answer from %s", message.from_)
            return
        await session.accept_answer(message.answer)

    async def _ice_candidate(self, message: schemas.RelayedIceCandidate) -> None:
        session = self.sessions.get(message.from_)
        if session is None:
            logger.debug("No session for candidate from %s", message.from_)
            return
        try:
            await session.add_remote_candidate(message.candidate)
        except NegotiationError as exc:
            logger.warning("Ignoring candidate from %s: %s", message.from_, exc)

    async def _broadcaster_left(self, message: schemas.BroadcasterLeft) -> None:
        if self.role is not ClientRole.VIEWER:
            return
        self._emit("broadcaster-left", {"roomId": self.room_id})
        await self.stop()

    async def _error(self, message: schemas.ErrorMessage) -> None:
        if self.role is ClientRole.VIEWER and schemas.BROADCASTER_KEY not in self.sessions:
            # a failed join is not retried on reconnect
            self.room_id = None
        self._emit("error", {"message": message.message})

    def _emit(self, name: str, data: Dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(name, data)

    def _require_idle(self) -> None:
        if self.role is not ClientRole.IDLE:
            raise RuntimeError(f"controller is already active as {self.role.value}")
