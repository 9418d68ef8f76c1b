"""Shared dummies for relay and client tests."""
from __future__ import annotations

import pytest
from aiortc import RTCSessionDescription

from screenrelay.services.connection import ConnectionContext, ConnectionHandle

OFFER_SDP = "v=0\r\no=- 1 1 IN IP4 127.0.0.1\r\ns=offer\r\n"
ANSWER_SDP = "v=0\r\no=- 2 2 IN IP4 127.0.0.1\r\ns=answer\r\n"
HOST_CANDIDATE = {
    "candidate": "candidate:1 1 UDP 2122252543 192.168.1.20 54321 typ host",
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}


class DummyConnection:
    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.messages: list[dict] = []
        self.closed_with: int | None = None

    async def send(self, message: dict) -> None:
        self.messages.append(message)

    async def close(self, code: int) -> None:
        self.closed_with = code

    def types(self) -> list[str]:
        return [message["type"] for message in self.messages]


class Participant:
    """A dummy connection wired to a handle and a fresh context."""

    def __init__(self, connection_id: str) -> None:
        self.connection = DummyConnection(connection_id)
        self.handle = ConnectionHandle(connection_id, self.connection.send, self.connection.close)
        self.context = ConnectionContext(handle=self.handle)

    @property
    def messages(self) -> list[dict]:
        return self.connection.messages

    async def drain(self) -> list[dict]:
        await self.handle.drain()
        return self.connection.messages


class FakePeerConnection:
    def __init__(self) -> None:
        self.tracks: list[object] = []
        self.localDescription: RTCSessionDescription | None = None
        self.remoteDescription: RTCSessionDescription | None = None
        self.candidates: list[object] = []
        self.handlers: dict[str, object] = {}
        self.closed = False

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    def addTrack(self, track: object) -> None:
        self.tracks.append(track)

    async def createOffer(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp=OFFER_SDP, type="offer")

    async def createAnswer(self) -> RTCSessionDescription:
        if self.remoteDescription is None:
            raise RuntimeError("createAnswer before setRemoteDescription")
        return RTCSessionDescription(sdp=ANSWER_SDP, type="answer")

    async def setLocalDescription(self, description: RTCSessionDescription) -> None:
        self.localDescription = description

    async def setRemoteDescription(self, description: RTCSessionDescription) -> None:
        self.remoteDescription = description

    async def addIceCandidate(self, candidate: object) -> None:
        if self.remoteDescription is None:
            raise RuntimeError("addIceCandidate before setRemoteDescription")
        self.candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def participant():
    return Participant


@pytest.fixture
def peer_connections():
    created: list[FakePeerConnection] = []

    def factory() -> FakePeerConnection:
        pc = FakePeerConnection()
        created.append(pc)
        return pc

    factory.created = created  # type: ignore[attr-defined]
    return factory
