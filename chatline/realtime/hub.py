import asyncio
import logging
from typing import Optional

from chatline.realtime.connection_manager import ConnectionManager
from chatline.realtime.locks import KeyedLocks
from chatline.realtime.typing_tracker import TypingTracker


logger = logging.getLogger(__name__)


class ChatHub:
    """Process-wide realtime state: rooms, typing entries, conversation and presence locks.

    Built once at startup and handed to every connection handler; tests build
    their own isolated instance.
    """

    def __init__(self, typing_timeout: float = 0) -> None:
        self.manager = ConnectionManager()
        self.typing = TypingTracker()
        self.locks = KeyedLocks()
        self.typing_timeout = typing_timeout
        self._sweeper: Optional[asyncio.Task] = None

    def start_typing_sweeper(self, on_expired) -> None:
        """Run ``on_expired(conversation_id, user_id)`` for entries older than the timeout."""
        if self.typing_timeout <= 0 or self._sweeper is not None:
            return

        async def _sweep():
            interval = max(self.typing_timeout / 2, 0.05)
            while True:
                await asyncio.sleep(interval)
                for conversation_id, user_id in self.typing.expire(self.typing_timeout):
                    try:
                        await on_expired(conversation_id, user_id)
                    except Exception:
                        logger.exception("Failed to announce expired typing entry %s/%s", conversation_id, user_id)

        self._sweeper = asyncio.create_task(_sweep())
        logger.info("Typing sweeper started (timeout=%ss)", self.typing_timeout)

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
