import logging
from typing import Any, Dict, Optional

from chatline.config import Settings
from chatline.errors import AuthenticationError
from chatline.realtime.connection_manager import Connection
from chatline.realtime.hub import ChatHub
from chatline.realtime.presence import PresenceStore
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.user_repository import UserRepository
from chatline.services.chat_service import ChatService
from chatline.utils.clock import utcnow
from chatline.utils.security import decode_access_token


logger = logging.getLogger(__name__)


def presence_key(user_id: str) -> str:
    return f"presence:{user_id}"


class SessionService:
    """Binds a connection to a user and drives presence on connect/disconnect."""

    def __init__(
        self,
        user_repo: UserRepository,
        conversation_repo: ConversationRepository,
        chat_service: ChatService,
        hub: ChatHub,
        settings: Settings,
    ) -> None:
        self._users = user_repo
        self._conversations = conversation_repo
        self._chat = chat_service
        self._hub = hub
        self._settings = settings
        self.presence = PresenceStore(user_repo)

    async def authenticate(self, token: Optional[str]) -> Dict[str, Any]:
        payload = decode_access_token(token or "", self._settings)
        user = await self._users.get_user_by_id(payload.sub)
        if not user:
            raise AuthenticationError("User not found")
        return user

    async def connect(self, user: Dict[str, Any], connection: Connection) -> None:
        user_id = user["_id"]
        self._hub.manager.join(user_id, connection)
        async with self._hub.locks(presence_key(user_id)):
            presence = await self.presence.set_online(user_id)
            logger.info("User %s connected", user_id)
            await self._broadcast_presence(user_id, presence)

    async def disconnect(self, user: Dict[str, Any], connection: Connection) -> None:
        user_id = user["_id"]
        self._hub.manager.leave(user_id, connection)
        for conversation_id in self._hub.typing.clear_user(user_id):
            try:
                await self._chat.announce_typing_stopped(conversation_id, user_id)
            except Exception:
                logger.exception("Failed to announce typing stop for %s in %s", user_id, conversation_id)
        async with self._hub.locks(presence_key(user_id)):
            # a new connection may have joined while the stops went out
            if self._hub.manager.is_connected(user_id):
                logger.info("User %s closed one of several connections", user_id)
                return
            presence = await self.presence.set_offline(user_id, utcnow())
            logger.info("User %s disconnected", user_id)
            await self._broadcast_presence(user_id, presence)

    async def _broadcast_presence(self, user_id: str, presence) -> None:
        partners = await self._conversations.list_partner_ids(user_id)
        await self._hub.manager.emit_many(partners, "user:status", presence)
