from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from mohoot.logic.enums import SessionStatus
from mohoot.logic.exceptions import CapacityError
from mohoot.messaging.router import MessageRouter
from mohoot.server.settings import QuizServerSettings
from mohoot.server.types import CreateSessionRequest
from mohoot.server.websocket import websocket_endpoint
from mohoot.session.manager import SessionManager
from shared.auth.player_ticket import verify_player_ticket
from shared.dal.paths import stats_path
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.db import Database, SqlitePlayedSessionRepository, SqliteStatsRepository
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from shared.auth.player_ticket import PlayerTicket
    from shared.dal.stats_repository import StatsRepository


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: QuizServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "live_sessions": session_manager.session_count,
            "max_capacity": settings.max_capacity,
        },
    )


_MAX_REQUEST_BODY_SIZE = 64 * 1024


async def create_session(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: QuizServerSettings = request.app.state.settings

    try:
        raw_body = await request.body()
        if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)
        body = json.loads(raw_body)
        session_request = CreateSessionRequest(**body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    ticket = verify_player_ticket(session_request.ticket, settings.player_ticket_secret)
    if ticket is None:
        return JSONResponse({"error": "Invalid or expired player ticket"}, status_code=400)

    try:
        pin = await session_manager.create_session(session_request.quiz, ticket.user_id, session_request.quiz_id)
    except CapacityError:
        return JSONResponse({"error": "Server at capacity"}, status_code=503)

    return JSONResponse({"pin": pin, "status": SessionStatus.LOBBY.value}, status_code=201)


_DEFAULT_ANSWER_HISTORY = 20
_MAX_ANSWER_HISTORY = 100


def _bearer_ticket(request: Request) -> PlayerTicket | None:
    settings: QuizServerSettings = request.app.state.settings
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer":
        return None
    return verify_player_ticket(token, settings.player_ticket_secret)


async def player_stats(request: Request) -> JSONResponse:
    stats_repository: StatsRepository | None = request.app.state.stats_repository
    ticket = _bearer_ticket(request)
    if ticket is None:
        return JSONResponse({"error": "Invalid or missing player ticket"}, status_code=401)
    if stats_repository is None:
        return JSONResponse({"error": "Stats are not available"}, status_code=503)

    stats = await stats_repository.get_stats(ticket.user_id)
    logger.debug("stats served", stats_key=stats_path(request.app.state.settings.app_id, ticket.user_id))
    return JSONResponse(stats.model_dump(by_alias=True))


async def player_answers(request: Request) -> JSONResponse:
    """Most recent answers of the ticket holder, newest first. `?limit=` caps the count (1-100)."""
    stats_repository: StatsRepository | None = request.app.state.stats_repository
    ticket = _bearer_ticket(request)
    if ticket is None:
        return JSONResponse({"error": "Invalid or missing player ticket"}, status_code=401)
    if stats_repository is None:
        return JSONResponse({"error": "Stats are not available"}, status_code=503)

    try:
        limit = int(request.query_params.get("limit", _DEFAULT_ANSWER_HISTORY))
    except ValueError:
        return JSONResponse({"error": "limit must be an integer"}, status_code=400)
    if not 1 <= limit <= _MAX_ANSWER_HISTORY:
        return JSONResponse({"error": f"limit must be between 1 and {_MAX_ANSWER_HISTORY}"}, status_code=400)

    answers = await stats_repository.get_recent_answers(ticket.user_id, limit)
    return JSONResponse({"answers": [answer.model_dump(mode="json") for answer in answers]})


def create_app(
    settings: QuizServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
    stats_repository: StatsRepository | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = QuizServerSettings()  # ty: ignore[missing-argument]

    # When the app creates its own SessionManager, it owns the DB lifecycle.
    owned_db: Database | None = None

    if session_manager is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        stats_repository = stats_repository or SqliteStatsRepository(db)
        session_manager = SessionManager(
            settings.game_settings(),
            max_sessions=settings.max_capacity,
            app_id=settings.app_id,
            session_ttl_seconds=settings.session_ttl_seconds,
            stats_repository=stats_repository,
            session_repository=SqlitePlayedSessionRepository(db),
        )

    if message_router is None:
        message_router = MessageRouter(session_manager, ticket_secret=settings.player_ticket_secret)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/sessions", create_session, methods=["POST"]),
        Route("/stats", player_stats, methods=["GET"]),
        Route("/stats/answers", player_answers, methods=["GET"]),
        WebSocketRoute("/ws/{pin}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        session_manager.start_reaper()
        try:
            yield
        finally:
            await session_manager.shutdown()
            if owned_db is not None:
                owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.stats_repository = stats_repository

    logger.info("quiz server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = QuizServerSettings()  # ty: ignore[missing-argument]
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
