"""Rooms: one broadcast group per user, holding all of that user's live sockets."""
import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Protocol, Set

from fastapi.encoders import jsonable_encoder


logger = logging.getLogger(__name__)


class Connection(Protocol):

    async def send_text(self, data: str) -> None: ...


def encode_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": jsonable_encoder(data)})


class ConnectionManager:
    """Maps a user id to the set of that user's live connections.

    ``join`` and ``leave`` never await, so on a single event loop a broadcast
    that starts after a completed join always sees the new connection.
    """

    def __init__(self) -> None:
        self.rooms: Dict[str, Set[Connection]] = {}

    def join(self, user_id: str, connection: Connection) -> None:
        self.rooms.setdefault(user_id, set()).add(connection)

    def leave(self, user_id: str, connection: Connection) -> bool:
        """Drop ``connection``; True when it was the user's last one."""
        room = self.rooms.get(user_id)
        if room is None:
            return True
        room.discard(connection)
        if not room:
            del self.rooms[user_id]
            return True
        return False

    def is_connected(self, user_id: str) -> bool:
        return bool(self.rooms.get(user_id))

    async def send(self, connection: Connection, event: str, data: Any) -> None:
        await connection.send_text(encode_event(event, data))

    async def emit(self, user_id: str, event: str, data: Any) -> None:
        """Push an event to every connection in the user's room. An empty room is fine."""
        targets = list(self.rooms.get(user_id, ()))
        if not targets:
            return
        message = encode_event(event, data)
        results = await asyncio.gather(*(conn.send_text(message) for conn in targets), return_exceptions=True)
        for conn, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("Dropping dead connection of user %s: %s", user_id, result)
                self.leave(user_id, conn)

    async def emit_many(self, user_ids: Iterable[str], event: str, data: Any) -> None:
        await asyncio.gather(*(self.emit(uid, event, data) for uid in user_ids))
