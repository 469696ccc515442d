from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from chatline.errors import AuthenticationError, ValidationError
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.message import as_utc
from chatline.schemas.user import UserPublic
from chatline.services.chat_service import storage_errors
from chatline.utils.security import hash_password, verify_password


class UserService:
    """Account registration, login and the user directory."""

    def __init__(self, user_repository: UserRepository, conversation_repository: Optional[ConversationRepository] = None):
        self.user_repository = user_repository
        self.conversation_repository = conversation_repository

    async def register_user(self, username: str, password: str, email: Optional[str] = None) -> UserPublic:
        """
        Register a new user
        - reject a username that is already taken
        - hash the password before storing it
        """
        existing = await self.user_repository.get_user_by_username(username)
        if existing:
            raise ValidationError("Username already registered")

        hashed_password = hash_password(password)
        try:
            new_id = await self.user_repository.create_user(
                username=username,
                hashed_password=hashed_password,
                email=email,
            )
        except DuplicateKeyError:
            raise ValidationError("Username already registered")

        return UserPublic(id=new_id, username=username, email=email)

    async def authenticate_user(self, username: str, password: str) -> dict:
        user = await self.user_repository.get_user_by_username(username)
        if not user or not verify_password(password, user.get("hashed_password", "")):
            raise AuthenticationError("Invalid credentials")
        return user

    async def list_directory(self, current_user_id: str) -> List[Dict[str, Any]]:
        """Every other user with presence, the last message exchanged with them,
        and the caller's unread count in that conversation."""
        with storage_errors("user directory"):
            users = await self.user_repository.list_users_except(current_user_id)
            entries = []
            for user in users:
                convo = None
                if self.conversation_repository is not None:
                    convo = await self.conversation_repository.find_between(current_user_id, user["_id"])
                entries.append(_directory_entry(user, convo, current_user_id))
        return entries


def _directory_entry(user: Dict[str, Any], convo: Optional[Dict[str, Any]], current_user_id: str) -> Dict[str, Any]:
    last_message = None
    unread = 0
    if convo and convo.get("last_message_id"):
        last_message = {
            "id": convo["last_message_id"],
            "text": convo.get("last_message_preview"),
            "createdAt": as_utc(convo.get("last_message_at")),
        }
        unread = int((convo.get("unread_counters") or {}).get(current_user_id, 0))
    return {
        "id": user["_id"],
        "username": user.get("username"),
        "email": user.get("email"),
        "isOnline": bool(user.get("is_online")),
        "lastSeen": as_utc(user.get("last_seen")),
        "conversationId": convo["_id"] if convo else None,
        "lastMessage": last_message,
        "unreadCount": unread,
    }
