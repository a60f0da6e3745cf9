import logging
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trivia_server.config import Settings
from trivia_server.engine import RoomEngine
from trivia_server.gateway import SocketIOGateway
from trivia_server.identity import IdentityResolver
from trivia_server.logging_config import configure_logging
from trivia_server.question_provider import build_question_generator
from trivia_server.room_store import RoomStore
from trivia_server.round_timer import RoundTimer
from trivia_server.routes import router
from trivia_server.socket_manager import create_socket_server, register_handlers

logger = logging.getLogger(__name__)


def create_api(settings: Settings, store: RoomStore, engine: Optional[RoomEngine] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if engine is not None:
            logger.info("Shutting down, clearing round timers")
            engine.shutdown()

    app = FastAPI(title="Trivia Rooms", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.store = store
    app.include_router(router)
    return app


def create_app(settings: Optional[Settings] = None) -> socketio.ASGIApp:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    sio = create_socket_server(settings)
    gateway = SocketIOGateway(sio)
    store = RoomStore(code_length=settings.room_code_length)
    timer = RoundTimer(store, gateway, time_scale=settings.timer_scale)
    engine = RoomEngine(
        store,
        timer,
        IdentityResolver(store),
        build_question_generator(settings),
        gateway,
        max_players=settings.max_players,
    )
    register_handlers(sio, engine)

    logger.info(f"Allowed origins: {', '.join(settings.cors_origins)}")
    logger.info(f"Question API key: {'Set' if settings.question_api_key else 'Not set'}")
    return socketio.ASGIApp(sio, create_api(settings, store, engine))


def run():
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run("trivia_server.main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
