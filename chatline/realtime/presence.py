from datetime import datetime
from typing import Optional

from chatline.errors import NotFoundError
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.message import as_utc
from chatline.schemas.user import PresenceOut


class PresenceStore:
    """Online flag and last-seen timestamp, kept on the user document.

    Pure state: broadcasting transitions is the session manager's job.
    """

    def __init__(self, user_repo: UserRepository) -> None:
        self._users = user_repo

    async def set_online(self, user_id: str) -> PresenceOut:
        user = await self._users.set_presence(user_id, True)
        return self._to_presence(user_id, user)

    async def set_offline(self, user_id: str, last_seen: datetime) -> PresenceOut:
        user = await self._users.set_presence(user_id, False, last_seen)
        return self._to_presence(user_id, user)

    async def get(self, user_id: str) -> PresenceOut:
        user = await self._users.get_user_by_id(user_id)
        return self._to_presence(user_id, user)

    @staticmethod
    def _to_presence(user_id: str, user: Optional[dict]) -> PresenceOut:
        if user is None:
            raise NotFoundError("User not found")
        return PresenceOut(
            userId=user_id,
            isOnline=bool(user.get("is_online")),
            lastSeen=as_utc(user.get("last_seen")),
        )
