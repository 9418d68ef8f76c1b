"""Tests for message routing between broadcaster and viewers."""
from __future__ import annotations

import pytest

from screenrelay.schemas.signaling import MalformedMessageError
from screenrelay.services.connection import Role
from screenrelay.services.registry import RoomRegistry
from screenrelay.services.router import ROOM_NOT_FOUND_MESSAGE, MessageRouter

OFFER = {"type": "offer", "sdp": "v=0 offer"}
ANSWER = {"type": "answer", "sdp": "v=0 answer"}


async def open_room(router: MessageRouter, broadcaster, room_id: str = "482") -> None:
    await router.handle(broadcaster.context, {"type": "create-room", "roomId": room_id})


@pytest.mark.asyncio
async def test_create_room_confirms_requested_id(participant):
    router = MessageRouter(RoomRegistry())
    a = participant("a")

    await open_room(router, a)

    assert await a.drain() == [{"type": "room-created", "roomId": "482"}]
    assert a.context.role is Role.BROADCASTER
    assert a.context.room_id == "482"


@pytest.mark.asyncio
async def test_second_creator_gets_confirmation_but_not_the_room(participant):
    registry = RoomRegistry()
    router = MessageRouter(registry)
    a, b = participant("a"), participant("b")

    await open_room(router, a)
    await open_room(router, b)

    assert await b.drain() == [{"type": "room-created", "roomId": "482"}]
    assert registry.lookup_broadcaster("482") is a.handle


@pytest.mark.asyncio
async def test_join_reports_membership_to_both_sides(participant):
    router = MessageRouter(RoomRegistry())
    a, b, c = participant("a"), participant("b"), participant("c")
    await open_room(router, a)

    await router.handle(b.context, {"type": "join-room", "roomId": "482"})
    await router.handle(c.context, {"type": "join-room", "roomId": "482", "viewerId": "cee"})

    joined_b = (await b.drain())[0]
    assert joined_b["type"] == "joined-room"
    assert joined_b["viewerId"] == b.context.viewer_id
    assert await c.drain() == [{"type": "joined-room", "viewerId": "cee"}]
    assert (await a.drain())[1:] == [
        {"type": "viewer-joined", "viewerId": b.context.viewer_id, "count": 1},
        {"type": "viewer-joined", "viewerId": "cee", "count": 2},
    ]
    assert c.context.role is Role.VIEWER


@pytest.mark.asyncio
async def test_join_unknown_room_returns_error(participant):
    router = MessageRouter(RoomRegistry())
    b = participant("b")

    await router.handle(b.context, {"type": "join-room", "roomId": "999"})

    assert await b.drain() == [{"type": "error", "message": ROOM_NOT_FOUND_MESSAGE}]
    assert b.context.role is Role.UNASSIGNED


@pytest.mark.asyncio
async def test_offer_answer_and_candidates_are_tagged_with_sender(participant):
    router = MessageRouter(RoomRegistry())
    a, b = participant("a"), participant("b")
    await open_room(router, a)
    await router.handle(b.context, {"type": "join-room", "roomId": "482", "viewerId": "v1"})
    await a.drain()
    await b.drain()
    a.messages.clear()
    b.messages.clear()

    await router.handle(a.context, {"type": "offer", "offer": OFFER, "target": "v1"})
    await router.handle(b.context, {"type": "answer", "answer": ANSWER})
    await router.handle(a.context, {"type": "ice-candidate", "candidate": {"candidate": "x"}, "target": "v1"})
    await router.handle(b.context, {"type": "ice-candidate", "candidate": {"candidate": "y"}})

    assert await b.drain() == [
        {"type": "offer", "offer": OFFER, "from": "broadcaster"},
        {"type": "ice-candidate", "candidate": {"candidate": "x"}, "from": "broadcaster"},
    ]
    assert await a.drain() == [
        {"type": "answer", "answer": ANSWER, "from": "v1"},
        {"type": "ice-candidate", "candidate": {"candidate": "y"}, "from": "v1"},
    ]


@pytest.mark.asyncio
async def test_unaddressable_relays_are_dropped_silently(participant):
    router = MessageRouter(RoomRegistry())
    a, b, stranger = participant("a"), participant("b"), participant("s")
    await open_room(router, a)
    await router.handle(b.context, {"type": "join-room", "roomId": "482", "viewerId": "v1"})
    await a.drain()
    await b.drain()
    before_a, before_b = len(a.messages), len(b.messages)

    await router.handle(a.context, {"type": "offer", "offer": OFFER, "target": "missing"})
    await router.handle(a.context, {"type": "ice-candidate", "candidate": {}, "target": "missing"})
    await router.handle(a.context, {"type": "ice-candidate", "candidate": {}})
    await router.handle(b.context, {"type": "offer", "offer": OFFER, "target": "v1"})
    await router.handle(stranger.context, {"type": "answer", "answer": ANSWER})
    await router.handle(stranger.context, {"type": "ice-candidate", "candidate": {}})

    assert len(await a.drain()) == before_a
    assert len(await b.drain()) == before_b
    assert await stranger.drain() == []


@pytest.mark.asyncio
async def test_relay_to_closed_handle_is_a_drop(participant):
    router = MessageRouter(RoomRegistry())
    a, b = participant("a"), participant("b")
    await open_room(router, a)
    await router.handle(b.context, {"type": "join-room", "roomId": "482", "viewerId": "v1"})
    await b.drain()
    b.handle.mark_closed()
    delivered = len(b.messages)

    await router.handle(a.context, {"type": "offer", "offer": OFFER, "target": "v1"})

    assert len(b.messages) == delivered


@pytest.mark.asyncio
async def test_unknown_types_are_ignored_and_malformed_frames_rejected(participant):
    router = MessageRouter(RoomRegistry())
    a = participant("a")

    await router.handle(a.context, {"type": "chat", "text": "hi"})
    assert await a.drain() == []

    with pytest.raises(MalformedMessageError):
        await router.handle(a.context, {"type": "create-room"})
    with pytest.raises(MalformedMessageError):
        await router.handle(a.context, ["create-room"])
    with pytest.raises(MalformedMessageError):
        await router.handle(a.context, {"roomId": "482"})
    assert a.context.role is Role.UNASSIGNED
