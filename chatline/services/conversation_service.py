from typing import Any, Dict, List

from chatline.errors import NotFoundError, ValidationError
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.message import MessagePayload
from chatline.services.chat_service import storage_errors


class ConversationService:

    def __init__(self, conversation_repo: ConversationRepository, user_repo: UserRepository) -> None:
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo

    async def find_or_create(self, user_id: str, other_user_id: str) -> Dict[str, Any]:
        """Idempotent and commutative: (a, b) and (b, a) give the same conversation."""
        if not other_user_id:
            raise ValidationError("otherUserId is required")
        if other_user_id == user_id:
            raise ValidationError("Cannot create conversation with yourself")
        with storage_errors("find-or-create"):
            other = await self._user_repo.get_user_by_id(other_user_id)
            if not other:
                raise NotFoundError("User not found")
            return await self._conversation_repo.get_or_create_one_to_one(user_id, other_user_id)

    async def to_payloads(self, messages: List[Dict[str, Any]]) -> List[MessagePayload]:
        usernames: Dict[str, str] = {}
        for msg in messages:
            sid = msg["sender_id"]
            if sid not in usernames:
                user = await self._user_repo.get_user_by_id(sid)
                usernames[sid] = user.get("username") if user else None
        return [MessagePayload.from_document(m, usernames.get(m["sender_id"])) for m in messages]
