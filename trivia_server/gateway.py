"""Delivery of room events to connected clients."""

import logging
from typing import Any

import socketio

logger = logging.getLogger(__name__)


class SocketIOGateway:
    """
    Broadcast gateway on top of a python-socketio AsyncServer.

    Room codes double as Socket.IO room names, so ``publish`` fans out to
    every connection that joined the room and ``reply`` targets a single sid.
    """

    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio

    async def publish(self, room_code: str, event: str, payload: Any = None):
        logger.debug(f"📤 {event} -> room {room_code}")
        await self.sio.emit(event, payload, room=room_code)

    async def reply(self, connection_id: str, event: str, payload: Any = None):
        logger.debug(f"📤 {event} -> {connection_id}")
        await self.sio.emit(event, payload, room=connection_id)

    async def join(self, connection_id: str, room_code: str):
        await self.sio.enter_room(connection_id, room_code)

    async def leave(self, connection_id: str, room_code: str):
        await self.sio.leave_room(connection_id, room_code)
