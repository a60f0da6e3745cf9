import logging

import socketio

from trivia_server.config import Settings
from trivia_server.engine import Action, RoomEngine

logger = logging.getLogger(__name__)

ACTIONS = (
    'createRoom',
    'joinRoom',
    'rejoinRoom',
    'updateSettings',
    'generateQuestions',
    'startQuiz',
    'selectAnswer',
    'nextQuestion',
    'playAgain',
    'leaveRoom',
)


def create_socket_server(settings: Settings) -> socketio.AsyncServer:
    return socketio.AsyncServer(
        async_mode='asgi',
        cors_allowed_origins=settings.cors_origins,
        logger=False,
        engineio_logger=False,
        ping_timeout=60,
        ping_interval=25,
        max_http_buffer_size=1_000_000,
    )


def _forward(engine: RoomEngine, kind: str):
    async def handler(sid, data=None):
        await engine.dispatch(Action(kind=kind, caller_id=sid, payload=data or {}))
    handler.__name__ = kind
    return handler


def register_handlers(sio: socketio.AsyncServer, engine: RoomEngine):
    """Route every inbound Socket.IO event into the room engine."""

    @sio.event
    async def connect(sid, environ, auth=None):
        logger.info(f"✅ Client connected: {sid}")

    @sio.event
    async def disconnect(sid, reason=None):
        logger.info(f"❌ Client disconnected: {sid} ({reason})")
        await engine.dispatch(Action(kind='disconnect', caller_id=sid))

    for kind in ACTIONS:
        sio.on(kind, _forward(engine, kind))
