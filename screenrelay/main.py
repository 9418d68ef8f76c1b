"""FastAPI application for the screen-sharing signaling relay."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .core.config import Settings, settings as default_settings
from .routers import signaling
from .services.lifecycle import ConnectionLifecycleManager
from .services.registry import RoomRegistry
from .services.router import MessageRouter

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the relay with its own room registry."""

    settings = settings or default_settings
    app = FastAPI(title="Screen Relay Signaling API", version="0.1.0")

    registry = RoomRegistry()
    app.state.settings = settings
    app.state.registry = registry
    app.state.message_router = MessageRouter(registry)
    app.state.lifecycle = ConnectionLifecycleManager(registry)

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health", tags=["meta"])
    async def health(request: Request) -> dict[str, object]:
        """Liveness probe reporting how many rooms are open."""

        return {
            "status": "ok",
            "rooms": len(request.app.state.registry),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.head("/health", tags=["meta"])
    async def health_head() -> Response:
        """Allow HEAD for uptime monitors that only need the status code."""

        return Response(status_code=200)

    app.include_router(signaling.router)
    return app


app = create_app()


def run() -> None:
    """Serve the relay with uvicorn using the configured bind address."""

    import uvicorn

    logging.basicConfig(
        level=default_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting signaling relay on %s:%s", default_settings.host, default_settings.port)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port, log_level=default_settings.log_level.lower())
