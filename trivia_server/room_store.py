import logging
from typing import Callable, Dict, Iterator, Optional

from trivia_server.game_logic import generate_room_code
from trivia_server.models import Room

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 50


class RoomStore:
    """In-memory rooms keyed by code, plus a connection -> room code index."""

    def __init__(self, code_length: int = 6,
                 code_factory: Callable[[int], str] = generate_room_code):
        self.rooms: Dict[str, Room] = {}
        self.connections: Dict[str, str] = {}  # connection id -> room code
        self._code_length = code_length
        self._code_factory = code_factory

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, code: str) -> bool:
        return code in self.rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self.rooms.values()))

    def new_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self._code_factory(self._code_length)
            if code not in self.rooms:
                return code
            logger.debug(f"Room code collision on {code}, retrying")
        raise RuntimeError("Could not allocate a unique room code")

    def get(self, code: str) -> Optional[Room]:
        return self.rooms.get(code)

    def add(self, room: Room) -> Room:
        if room.code in self.rooms:
            raise ValueError(f"Room {room.code} already exists")
        self.rooms[room.code] = room
        return room

    def delete(self, code: str) -> Optional[Room]:
        room = self.rooms.pop(code, None)
        if room is not None:
            for player in room.players:
                if self.connections.get(player.connection_id) == code:
                    del self.connections[player.connection_id]
        return room

    def bind_connection(self, connection_id: str, code: str):
        self.connections[connection_id] = code

    def unbind_connection(self, connection_id: str) -> Optional[str]:
        return self.connections.pop(connection_id, None)

    def room_code_for(self, connection_id: str) -> Optional[str]:
        return self.connections.get(connection_id)

    def room_for(self, connection_id: str) -> Optional[Room]:
        code = self.connections.get(connection_id)
        return self.rooms.get(code) if code else None
