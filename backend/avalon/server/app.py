from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from avalon.logic.avalon_service import AvalonGameService
from avalon.messaging.router import MessageRouter
from avalon.server.settings import GameServerSettings
from avalon.server.websocket import websocket_endpoint
from avalon.session.manager import SessionManager
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from avalon.logic.service import GameService


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: GameServerSettings = request.app.state.settings
    stats = session_manager.stats()
    return JSONResponse(
        {
            "status": "ok",
            **stats.model_dump(),
            "capacity_used": stats.lobby_rooms + stats.active_games + stats.ended_games,
            "max_capacity": settings.max_capacity,
        },
    )


def create_app(
    settings: GameServerSettings | None = None,
    game_service: GameService | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GameServerSettings()

    if game_service is None:
        game_service = AvalonGameService(settings=settings.game_settings())

    if session_manager is None:
        session_manager = SessionManager(
            game_service,
            max_capacity=settings.max_capacity,
            room_ttl_seconds=settings.room_ttl_seconds,
            ended_game_ttl_seconds=settings.ended_game_ttl_seconds,
            require_full_room=settings.require_full_room,
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        session_manager.start_reapers()
        try:
            yield
        finally:
            await session_manager.shutdown()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("avalon server ready", max_capacity=settings.max_capacity)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (uvicorn avalon.server.app:get_app --factory)."""
    _settings = GameServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
