"""Per-peer negotiation sessions built on aiortc."""
from __future__ import annotations

import enum
import logging
from typing import Any, Awaitable, Callable, Iterable

from aiortc import RTCConfiguration, RTCIceCandidate, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

logger = logging.getLogger(__name__)

LocalCandidateHandler = Callable[[str, dict], Awaitable[None]]
TrackHandler = Callable[[str, Any], None]


class NegotiationError(RuntimeError):
    """Raised when a negotiation step arrives in the wrong state or with a bad payload."""


class SessionState(str, enum.Enum):
    IDLE = "idle"
    OFFER_PENDING = "offer-pending"
    ANSWER_PENDING = "answer-pending"
    NEGOTIATING = "negotiating"
    CLOSED = "closed"


def create_peer_connection(ice_servers: Iterable[str]) -> RTCPeerConnection:
    configuration = RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in ice_servers])
    return RTCPeerConnection(configuration=configuration)


def description_from_json(blob: Any) -> RTCSessionDescription:
    try:
        return RTCSessionDescription(sdp=blob["sdp"], type=blob["type"])
    except (KeyError, TypeError, ValueError) as exc:
        raise NegotiationError(f"invalid session description: {exc}") from exc


def description_to_json(description: RTCSessionDescription) -> dict:
    return {"sdp": description.sdp, "type": description.type}


def candidate_from_json(blob: Any) -> RTCIceCandidate | None:
    """Parse a browser-style candidate; ``None`` marks end-of-candidates."""

    if not blob:
        return None
    if isinstance(blob, str):
        line, mid, index = blob, None, None
    else:
        line = blob.get("candidate") or ""
        mid, index = blob.get("sdpMid"), blob.get("sdpMLineIndex")
    if not line:
        return None
    if line.startswith("candidate:"):
        line = line[len("candidate:"):]
    try:
        candidate = candidate_from_sdp(line)
    except (AssertionError, IndexError, ValueError) as exc:
        raise NegotiationError(f"invalid ICE candidate {line!r}") from exc
    candidate.sdpMid = mid
    candidate.sdpMLineIndex = index
    return candidate


def candidate_to_json(candidate: RTCIceCandidate) -> dict:
    return {
        "candidate": f"candidate:{candidate_to_sdp(candidate)}",
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


class NegotiationSession:
    """Offer/answer state machine around one exclusively owned peer connection.

    Remote candidates that arrive before the remote description are held and
    replayed once it is applied.
    """

    def __init__(
        self,
        peer_key: str,
        peer_connection: Any,
        *,
        tracks: Iterable[Any] = (),
        on_local_candidate: LocalCandidateHandler | None = None,
        on_track: TrackHandler | None = None,
    ) -> None:
        self.peer_key = peer_key
        self.pc = peer_connection
        self.state = SessionState.IDLE
        self._on_local_candidate = on_local_candidate
        self._pending_candidates: list[RTCIceCandidate] = []
        self._remote_applied = False

        for track in tracks:
            self.pc.addTrack(track)
        if on_local_candidate is not None:
            self.pc.on("icecandidate", self._emit_local_candidate)
        if on_track is not None:
            self.pc.on("track", lambda track: on_track(peer_key, track))

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def pending_candidates(self) -> int:
        return len(self._pending_candidates)

    async def create_offer(self) -> dict:
        self._require(SessionState.IDLE)
        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        self.state = SessionState.OFFER_PENDING
        return description_to_json(self.pc.localDescription)

    async def accept_answer(self, blob: Any) -> None:
        self._require(SessionState.OFFER_PENDING)
        await self._apply_remote(description_from_json(blob))
        self.state = SessionState.NEGOTIATING

    async def accept_offer(self, blob: Any) -> dict:
        """Apply a remote offer and return the local answer."""

        self._require(SessionState.IDLE, SessionState.NEGOTIATING)
        description = description_from_json(blob)
        self.state = SessionState.ANSWER_PENDING
        await self._apply_remote(description)
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        self.state = SessionState.NEGOTIATING
        return description_to_json(self.pc.localDescription)

    async def add_remote_candidate(self, blob: Any) -> None:
        if self.closed:
            return
        candidate = candidate_from_json(blob)
        if candidate is None:
            return
        if not self._remote_applied:
            self._pending_candidates.append(candidate)
            return
        await self.pc.addIceCandidate(candidate)

    async def close(self) -> None:
        if self.closed:
            return
        self.state = SessionState.CLOSED
        self._pending_candidates.clear()
        await self.pc.close()

    async def _apply_remote(self, description: RTCSessionDescription) -> None:
        await self.pc.setRemoteDescription(description)
        self._remote_applied = True
        pending, self._pending_candidates = self._pending_candidates, []
        for candidate in pending:
            await self.pc.addIceCandidate(candidate)

    async def _emit_local_candidate(self, candidate: RTCIceCandidate | None) -> None:
        if candidate is None or self.closed or self._on_local_candidate is None:
            return
        await self._on_local_candidate(self.peer_key, candidate_to_json(candidate))

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            expected = ", ".join(state.value for state in states)
            raise NegotiationError(f"session {self.peer_key} is {self.state.value}, expected {expected}")
