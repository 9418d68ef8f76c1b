"""End-to-end tests for the WebSocket signaling endpoint."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from screenrelay.main import create_app

OFFER = {"type": "offer", "sdp": "v=0 offer"}
ANSWER = {"type": "answer", "sdp": "v=0 answer"}


def test_broadcaster_and_viewer_exchange_handshake():
    app = create_app()

    with TestClient(app) as client:
        with client.websocket_connect("/") as ws_a:
            ws_a.send_json({"type": "create-room", "roomId": "482"})
            assert ws_a.receive_json() == {"type": "room-created", "roomId": "482"}

            with client.websocket_connect("/") as ws_b:
                ws_b.send_json({"type": "join-room", "roomId": "482"})
                joined = ws_b.receive_json()
                assert joined["type"] == "joined-room"
                viewer_id = joined["viewerId"]

                assert ws_a.receive_json() == {"type": "viewer-joined", "viewerId": viewer_id, "count": 1}

                ws_a.send_json({"type": "offer", "offer": OFFER, "target": viewer_id})
                assert ws_b.receive_json() == {"type": "offer", "offer": OFFER, "from": "broadcaster"}

                ws_b.send_json({"type": "answer", "answer": ANSWER})
                assert ws_a.receive_json() == {"type": "answer", "answer": ANSWER, "from": viewer_id}

            assert ws_a.receive_json() == {"type": "viewer-left", "viewerId": viewer_id, "count": 0}


def test_broadcaster_disconnect_closes_room_for_viewers():
    app = create_app()

    with TestClient(app) as client:
        with client.websocket_connect("/") as ws_b:
            with client.websocket_connect("/") as ws_a:
                ws_a.send_json({"type": "create-room", "roomId": "123"})
                ws_a.receive_json()
                ws_b.send_json({"type": "join-room", "roomId": "123", "viewerId": "v1"})
                assert ws_b.receive_json() == {"type": "joined-room", "viewerId": "v1"}
                ws_a.receive_json()

            assert ws_b.receive_json() == {"type": "broadcaster-left"}
            with pytest.raises(WebSocketDisconnect):
                ws_b.receive_json()

        assert "123" not in app.state.registry

        with client.websocket_connect("/") as ws_c:
            ws_c.send_json({"type": "join-room", "roomId": "123"})
            assert ws_c.receive_json()["type"] == "error"


def test_malformed_frames_do_not_close_the_connection():
    app = create_app()

    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            ws.send_text("not json")
            ws.send_bytes(b'{"type": "create-room", "roomId": "\xff\xfe"}')
            ws.send_json({"type": "join-room"})
            ws.send_json({"type": "unheard-of"})
            ws.send_json({"type": "create-room", "roomId": "777"})

            assert ws.receive_json() == {"type": "room-created", "roomId": "777"}
            assert len(app.state.registry) == 1
            assert "777" in app.state.registry


def test_binary_frames_are_decoded_as_json():
    app = create_app()

    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            ws.send_bytes('{"type": "create-room", "roomId": "Ä1"}'.encode("utf-8"))

            assert ws.receive_json() == {"type": "room-created", "roomId": "Ä1"}
