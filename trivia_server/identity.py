import logging
from typing import Optional

from trivia_server.errors import GameInProgress
from trivia_server.models import Player, Room
from trivia_server.room_store import RoomStore

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Maps live connections to durable player identities (client ids)."""

    def __init__(self, store: RoomStore):
        self.store = store

    def find(self, room: Room, client_id: Optional[str]) -> Optional[Player]:
        if not client_id:
            return None
        return next((p for p in room.players if p.client_id == client_id), None)

    def rebind(self, room: Room, player: Player, connection_id: str) -> str:
        """Point an existing player at a new live connection and return the connection it replaced."""
        old_id = player.connection_id
        if old_id != connection_id:
            if self.store.room_code_for(old_id) == room.code:
                self.store.unbind_connection(old_id)
            player.connection_id = connection_id
            if room.admin_id == old_id:
                room.admin_id = connection_id
        self.attach(connection_id, room.code)
        logger.info(f"🔄 {player.name} rebound in room {room.code}: {old_id} -> {connection_id}")
        return old_id

    def resolve(self, room: Room, client_id: Optional[str], connection_id: str) -> Optional[Player]:
        """
        Find the player a connection should take over, without touching the
        room. Returns None when the caller should join fresh and raises
        GameInProgress when there is no match and the room no longer admits
        new players.
        """
        existing = room.find_player(connection_id) or self.find(room, client_id)
        if existing is not None:
            return existing
        if not room.is_lobby_like:
            raise GameInProgress()
        return None

    def attach(self, connection_id: str, code: str):
        self.store.bind_connection(connection_id, code)

    def release(self, connection_id: str) -> Optional[str]:
        return self.store.unbind_connection(connection_id)
