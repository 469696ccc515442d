"""Message lifecycle: send -> delivered -> read, plus typing signals.

This is the only place that mutates unread counters. Every mutation of a
conversation's counters or of its messages' status fields runs under that
conversation's lock; fan-out happens after the lock is released.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from chatline.errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from chatline.realtime.hub import ChatHub
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.schemas.message import MessagePayload, MessageReadRequest, MessageSendRequest
from chatline.utils.clock import utcnow
from chatline.utils.ids import parse_object_id


logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200

_MEDIA_LABELS = {
    "image": "📷 Photo",
    "video": "🎥 Video",
    "audio": "🎵 Audio",
}


def message_preview(doc: Dict[str, Any]) -> str:
    kind = doc.get("message_type") or "text"
    if kind == "text":
        return (doc.get("text") or "")[:PREVIEW_LENGTH]
    if kind == "document":
        return f"📄 {doc.get('file_name') or 'Document'}"
    return _MEDIA_LABELS.get(kind, doc.get("text") or "")


def other_participant(conversation: Dict[str, Any], user_id: str) -> Optional[str]:
    for pid in conversation.get("participants", []):
        if pid != user_id:
            return pid
    return None


@contextmanager
def storage_errors(action: str):
    try:
        yield
    except PyMongoError:
        logger.exception("Storage failure during %s", action)
        raise StorageError("storage unavailable")


class ChatService:

    def __init__(self, message_repo: MessageRepository, conversation_repo: ConversationRepository, hub: ChatHub) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._hub = hub

    async def get_conversation_for(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        with storage_errors("conversation lookup"):
            convo = await self._conversation_repo.get_by_id(conversation_id)
        if not convo:
            raise NotFoundError("Conversation not found")
        if user_id not in convo.get("participants", []):
            raise AuthorizationError("Access denied")
        return convo

    async def send_message(self, sender: Dict[str, Any], request: MessageSendRequest) -> MessagePayload:
        sender_id = sender["_id"]
        convo = await self.get_conversation_for(request.conversationId, sender_id)
        conversation_id = convo["_id"]
        recipients = [p for p in convo["participants"] if p != sender_id]

        async with self._hub.locks(conversation_id):
            with storage_errors("message insert"):
                saved = await self._message_repo.save_message(
                    conversation_id=conversation_id,
                    sender_id=sender_id,
                    text=request.text or "",
                    message_type=request.messageType or "text",
                    file_url=request.fileUrl,
                    file_name=request.fileName,
                    file_size=request.fileSize,
                    mime_type=request.mimeType,
                    client_message_id=request.clientMessageId,
                )
            try:
                await self._conversation_repo.update_on_new_message(
                    conversation_id, saved["_id"], message_preview(saved), saved["created_at"], recipients,
                )
            except PyMongoError:
                logger.exception("Ledger update failed for message %s; rolling back", saved["_id"])
                with storage_errors("message rollback"):
                    await self._message_repo.delete_message(saved["_id"])
                raise StorageError("storage unavailable")

        payload = MessagePayload.from_document(saved, sender.get("username"))
        logger.debug("Message %s created in %s by %s", payload.id, conversation_id, sender_id)
        # sender included so their other sessions converge
        await self._hub.manager.emit_many(convo["participants"], "message:new", payload)
        return payload

    async def mark_delivered(self, user_id: str, message_id: str) -> bool:
        """Record the recipient's delivery ack. Only the first ack changes state
        and notifies the sender; repeats are no-ops."""
        with storage_errors("message lookup"):
            message = await self._message_repo.get_by_id(message_id)
        if not message:
            raise NotFoundError("Message not found")
        conversation_id = str(message["conversation_id"])
        await self.get_conversation_for(conversation_id, user_id)
        sender_id = message["sender_id"]
        if sender_id == user_id:
            return False

        async with self._hub.locks(conversation_id):
            with storage_errors("delivery update"):
                changed = await self._message_repo.mark_delivered(message_id, utcnow())
        if changed:
            logger.debug("Message %s delivered to %s", message_id, user_id)
            await self._hub.manager.emit(sender_id, "message:delivered", {
                "messageId": message_id,
                "conversationId": conversation_id,
            })
        return changed

    async def mark_read(self, user_id: str, request: MessageReadRequest) -> int:
        """Mark a batch as read by ``user_id``; returns how many messages transitioned."""
        oids = [parse_object_id(mid) for mid in request.messageIds]
        if any(oid is None for oid in oids):
            raise ValidationError("messageIds must be message ids")
        convo = await self.get_conversation_for(request.conversationId, user_id)
        conversation_id = convo["_id"]

        remaining = None
        async with self._hub.locks(conversation_id):
            with storage_errors("read update"):
                modified = await self._message_repo.mark_read(conversation_id, user_id, oids, utcnow())
                if modified:
                    remaining = await self._message_repo.count_unread(conversation_id, user_id)
                    await self._conversation_repo.set_unread(conversation_id, user_id, remaining)

        if remaining is not None:
            await self._hub.manager.emit(user_id, "conversation:unread-updated", {
                "conversationId": conversation_id,
                "unreadCount": remaining,
            })
        other = other_participant(convo, user_id)
        if other:
            await self._hub.manager.emit(other, "message:read", {
                "conversationId": conversation_id,
                "messageIds": list(request.messageIds),
            })
        return modified

    async def start_typing(self, user: Dict[str, Any], conversation_id: str) -> bool:
        user_id = user["_id"]
        convo = await self.get_conversation_for(conversation_id, user_id)
        is_new = self._hub.typing.start(convo["_id"], user_id)
        other = other_participant(convo, user_id)
        if is_new and other:
            await self._hub.manager.emit(other, "typing:start", {
                "conversationId": convo["_id"],
                "userId": user_id,
                "username": user.get("username"),
            })
        return is_new

    async def stop_typing(self, user_id: str, conversation_id: str) -> None:
        convo = await self.get_conversation_for(conversation_id, user_id)
        self._hub.typing.stop(convo["_id"], user_id)
        await self._announce_typing_stop(convo, user_id)

    async def announce_typing_stopped(self, conversation_id: str, user_id: str) -> None:
        """Tell the other participant that an entry already removed from the tracker is gone."""
        with storage_errors("typing stop lookup"):
            convo = await self._conversation_repo.get_by_id(conversation_id)
        if convo:
            await self._announce_typing_stop(convo, user_id)

    async def _announce_typing_stop(self, convo: Dict[str, Any], user_id: str) -> None:
        other = other_participant(convo, user_id)
        if other:
            await self._hub.manager.emit(other, "typing:stop", {
                "conversationId": convo["_id"],
                "userId": user_id,
            })

    async def get_history(self, conversation_id: str, user_id: str, limit: int = 50, cursor: str | None = None):
        await self.get_conversation_for(conversation_id, user_id)
        with storage_errors("history"):
            messages, next_cursor = await self._message_repo.get_messages_by_conversation(conversation_id, limit=limit, cursor=cursor)
        return messages, next_cursor

    async def list_conversations(self, user_id: str, limit: int = 20, cursor: str | None = None) -> tuple[List[Dict[str, Any]], Optional[str]]:
        with storage_errors("conversation listing"):
            return await self._conversation_repo.list_for_user(user_id, limit=limit, cursor=cursor)
