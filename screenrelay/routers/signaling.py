"""WebSocket signaling endpoint."""
from __future__ import annotations

import json
import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket

from ..schemas.signaling import MalformedMessageError
from ..services.connection import ConnectionContext, ConnectionHandle
from ..services.lifecycle import ConnectionLifecycleManager
from ..services.router import MessageRouter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Relay room setup, SDP and ICE frames between a broadcaster and its viewers."""

    message_router: MessageRouter = websocket.app.state.message_router
    lifecycle: ConnectionLifecycleManager = websocket.app.state.lifecycle
    settings = websocket.app.state.settings

    await websocket.accept()

    async def close(code: int) -> None:
        await websocket.close(code=code)

    handle = ConnectionHandle(
        str(uuid4()),
        send=websocket.send_json,
        close=close,
        max_queue=settings.send_queue_size,
        send_timeout=settings.send_timeout,
    )
    handle.start()
    context = ConnectionContext(handle=handle)
    logger.info("Connection %s opened", handle.connection_id)

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes")
            if raw is None:
                continue
            try:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8")
                payload = json.loads(raw)
                await message_router.handle(context, payload)
            except (ValueError, MalformedMessageError) as exc:
                logger.warning("Discarding malformed message from %s: %s", handle.connection_id, exc)
            except Exception as exc:  # noqa: BLE001 - one bad frame must not end the session
                logger.exception("Failed handling message from %s: %s", handle.connection_id, exc)
    except Exception as exc:  # noqa: BLE001 - the transport failed under us
        logger.warning("Connection %s errored: %s", handle.connection_id, exc)
    finally:
        handle.mark_closed()
        await lifecycle.on_close(context)
        await handle.shutdown()
        logger.info("Connection %s closed", handle.connection_id)
