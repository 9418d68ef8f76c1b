"""Wire contracts for the signaling protocol.

Every frame is a JSON object whose ``type`` discriminates the remaining
fields. Field names travel in camelCase (``roomId``, ``viewerId``); relayed
payloads (``offer``, ``answer``, ``candidate``) are opaque and never inspected.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

BROADCASTER_KEY = "broadcaster"


class MalformedMessageError(ValueError):
    """Raised when an inbound frame does not match the protocol schema."""


class SignalMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Return the wire representation of this message."""

        return self.model_dump(by_alias=True, exclude_none=True)


# client -> server


class CreateRoom(SignalMessage):
    type: Literal["create-room"] = "create-room"
    room_id: str


class JoinRoom(SignalMessage):
    type: Literal["join-room"] = "join-room"
    room_id: str
    viewer_id: str | None = None


class SendOffer(SignalMessage):
    type: Literal["offer"] = "offer"
    offer: Any
    target: str | None = None


class SendAnswer(SignalMessage):
    type: Literal["answer"] = "answer"
    answer: Any


class SendIceCandidate(SignalMessage):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any = None
    target: str | None = None


ClientMessage = Annotated[
    Union[CreateRoom, JoinRoom, SendOffer, SendAnswer, SendIceCandidate],
    Field(discriminator="type"),
]


# server -> client


class RoomCreated(SignalMessage):
    type: Literal["room-created"] = "room-created"
    room_id: str


class JoinedRoom(SignalMessage):
    type: Literal["joined-room"] = "joined-room"
    viewer_id: str


class ViewerJoined(SignalMessage):
    type: Literal["viewer-joined"] = "viewer-joined"
    viewer_id: str
    count: int = Field(..., ge=0)


class ViewerLeft(SignalMessage):
    type: Literal["viewer-left"] = "viewer-left"
    viewer_id: str
    count: int = Field(..., ge=0)


class RelayedOffer(SignalMessage):
    type: Literal["offer"] = "offer"
    offer: Any
    from_: str = Field(..., alias="from")


class RelayedAnswer(SignalMessage):
    type: Literal["answer"] = "answer"
    answer: Any
    from_: str = Field(..., alias="from")


class RelayedIceCandidate(SignalMessage):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any = None
    from_: str = Field(..., alias="from")


class BroadcasterLeft(SignalMessage):
    type: Literal["broadcaster-left"] = "broadcaster-left"


class ErrorMessage(SignalMessage):
    type: Literal["error"] = "error"
    message: str


ServerMessage = Annotated[
    Union[
        RoomCreated,
        JoinedRoom,
        ViewerJoined,
        ViewerLeft,
        RelayedOffer,
        RelayedAnswer,
        RelayedIceCandidate,
        BroadcasterLeft,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]

CLIENT_MESSAGE_TYPES = frozenset({"create-room", "join-room", "offer", "answer", "ice-candidate"})
SERVER_MESSAGE_TYPES = frozenset({
    "room-created",
    "joined-room",
    "viewer-joined",
    "viewer-left",
    "offer",
    "answer",
    "ice-candidate",
    "broadcaster-left",
    "error",
})

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def _parse(adapter: TypeAdapter, known: frozenset[str], payload: Any) -> Any:
    if not isinstance(payload, dict):
        raise MalformedMessageError(f"expected a JSON object, got {type(payload).__name__}")
    message_type = payload.get("type")
    if not isinstance(message_type, str):
        raise MalformedMessageError("message has no type")
    if message_type not in known:
        return None
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise MalformedMessageError(str(exc)) from exc


def parse_client_message(payload: Any) -> ClientMessage | None:
    """Validate a frame sent by a participant.

    Returns ``None`` for types the relay does not handle so callers can ignore
    them; raises :class:`MalformedMessageError` for anything else that fails
    validation.
    """

    return _parse(_client_adapter, CLIENT_MESSAGE_TYPES, payload)


def parse_server_message(payload: Any) -> ServerMessage | None:
    """Validate a frame sent by the relay, mirroring :func:`parse_client_message`."""

    return _parse(_server_adapter, SERVER_MESSAGE_TYPES, payload)
