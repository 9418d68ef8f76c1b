from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from screenrelay.main import create_app
from screenrelay.services.connection import ConnectionHandle


async def _noop_send(message: dict) -> None:
    return None


@pytest.mark.asyncio
async def test_health_endpoint_reports_room_count() -> None:
    app = create_app()
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        empty = await client.get("/health")
        await app.state.registry.create_room("482", ConnectionHandle("a", _noop_send))
        busy = await client.get("/health")

    assert empty.status_code == 200
    body = empty.json()
    assert body["status"] == "ok"
    assert body["rooms"] == 0
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None
    assert busy.json()["rooms"] == 1


@pytest.mark.asyncio
async def test_health_head() -> None:
    transport = ASGITransport(app=create_app())

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.head("/health")

    assert response.status_code == 200
