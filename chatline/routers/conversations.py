from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from chatline.database.connection import mongo_db_dependency
from chatline.realtime.hub import ChatHub
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.user_repository import UserRepository
from chatline.services.chat_service import ChatService
from chatline.services.conversation_service import ConversationService
from chatline.utils.dependencies import get_current_user, get_hub


router = APIRouter(prefix="/conversations", tags=["chat"])


class FindOrCreateBody(BaseModel):

    otherUserId: str = ""


def get_chat_service(db = Depends(mongo_db_dependency), hub: ChatHub = Depends(get_hub)) -> ChatService:
    return ChatService(MessageRepository(db), ConversationRepository(db), hub)


def get_conversation_service(db = Depends(mongo_db_dependency)) -> ConversationService:
    return ConversationService(ConversationRepository(db), UserRepository(db))


@router.post("/find-or-create")
async def find_or_create(body: FindOrCreateBody, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    convo = await service.find_or_create(current_user["_id"], body.otherUserId)
    return {"id": convo["_id"], "participants": convo["participants"]}


@router.get("")
async def list_conversations(limit: int = Query(20, ge=1, le=100), cursor: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items, next_cursor = await service.list_conversations(current_user["_id"], limit=limit, cursor=cursor)
    return {
        "items": [
            {
                "id": it["_id"],
                "participants": it["participants"],
                "lastMessageId": it.get("last_message_id"),
                "lastMessageAt": it.get("last_message_at"),
                "lastMessagePreview": it.get("last_message_preview"),
                "unreadCount": int((it.get("unread_counters") or {}).get(current_user["_id"], 0)),
            }
            for it in items
        ],
        "next_cursor": next_cursor,
    }


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, limit: int = Query(50, ge=1, le=200), cursor: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service), conversations: ConversationService = Depends(get_conversation_service)):
    messages, next_cursor = await service.get_history(conversation_id, current_user["_id"], limit=limit, cursor=cursor)
    return {"items": await conversations.to_payloads(messages), "next_cursor": next_cursor}
