import time
from typing import Callable, Dict, List, Tuple


class TypingTracker:
    """Who is typing in which conversation. Never persisted.

    Entries live until an explicit stop, the owner's disconnect, or, when the
    server runs a sweeper, until ``expire`` finds them older than its limit.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # conversation_id -> {user_id: last start}
        self._entries: Dict[str, Dict[str, float]] = {}

    def start(self, conversation_id: str, user_id: str) -> bool:
        """Insert or refresh an entry. True when the user was not typing yet."""
        typers = self._entries.setdefault(conversation_id, {})
        is_new = user_id not in typers
        typers[user_id] = self._clock()
        return is_new

    def stop(self, conversation_id: str, user_id: str) -> bool:
        """Remove an entry. True when there was one."""
        typers = self._entries.get(conversation_id)
        if not typers or user_id not in typers:
            return False
        del typers[user_id]
        if not typers:
            del self._entries[conversation_id]
        return True

    def is_typing(self, conversation_id: str, user_id: str) -> bool:
        return user_id in self._entries.get(conversation_id, {})

    def clear_user(self, user_id: str) -> List[str]:
        """Drop every entry owned by ``user_id``; returns the affected conversations."""
        cleared = [cid for cid, typers in self._entries.items() if user_id in typers]
        for cid in cleared:
            self.stop(cid, user_id)
        return cleared

    def expire(self, max_age: float) -> List[Tuple[str, str]]:
        """Drop entries not refreshed within ``max_age`` seconds."""
        cutoff = self._clock() - max_age
        stale = [
            (cid, uid)
            for cid, typers in self._entries.items()
            for uid, started in typers.items()
            if started <= cutoff
        ]
        for cid, uid in stale:
            self.stop(cid, uid)
        return stale
