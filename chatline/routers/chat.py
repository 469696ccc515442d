import json
import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from chatline.database.connection import mongo_db_dependency
from chatline.errors import AuthenticationError, ChatError, ValidationError
from chatline.realtime.hub import ChatHub
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.message import (
    ClientFrame,
    MessageDeliveredRequest,
    MessageReadRequest,
    MessageSendRequest,
    TypingRequest,
)
from chatline.services.chat_service import ChatService
from chatline.services.session_service import SessionService
from chatline.utils.security import bearer_token


logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

# close code sent before accept when the credential is rejected
WS_UNAUTHORIZED = 4401


def build_services(db, hub: ChatHub, settings):
    chat = ChatService(MessageRepository(db), ConversationRepository(db), hub)
    session = SessionService(UserRepository(db), ConversationRepository(db), chat, hub, settings)
    return chat, session


def parse(model: type[BaseModel], data: Any):
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc))


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    msg = err.get("msg", "Invalid payload")
    if msg.startswith("Value error, "):
        return msg[len("Value error, "):]
    loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
    return f"{loc}: {msg}" if loc else msg


class EventDispatcher:
    """Routes one client frame to the lifecycle engine on behalf of ``user``."""

    def __init__(self, chat: ChatService, user: Dict[str, Any]) -> None:
        self._chat = chat
        self._user = user
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "message:send": self._on_send,
            "message:delivered": self._on_delivered,
            "message:read": self._on_read,
            "typing:start": self._on_typing_start,
            "typing:stop": self._on_typing_stop,
        }

    async def dispatch(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._handlers.get(event)
        if handler is None:
            raise ValidationError(f"Unknown event: {event}")
        return await handler(data)

    async def _on_send(self, data):
        request = parse(MessageSendRequest, data)
        payload = await self._chat.send_message(self._user, request)
        return {"message": payload}

    async def _on_delivered(self, data):
        request = parse(MessageDeliveredRequest, data)
        await self._chat.mark_delivered(self._user["_id"], request.messageId)
        return {"ok": True}

    async def _on_read(self, data):
        request = parse(MessageReadRequest, data)
        updated = await self._chat.mark_read(self._user["_id"], request)
        return {"ok": True, "updated": updated}

    async def _on_typing_start(self, data):
        request = parse(TypingRequest, data)
        await self._chat.start_typing(self._user, request.conversationId)
        return {"ok": True}

    async def _on_typing_stop(self, data):
        request = parse(TypingRequest, data)
        await self._chat.stop_typing(self._user["_id"], request.conversationId)
        return {"ok": True}


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, db=Depends(mongo_db_dependency)):
    hub: ChatHub = websocket.app.state.hub
    chat, session = build_services(db, hub, websocket.app.state.settings)

    # token via ?token=... or an Authorization: Bearer header
    token = websocket.query_params.get("token") or bearer_token(websocket.headers.get("authorization"))
    try:
        user = await session.authenticate(token)
    except AuthenticationError as exc:
        logger.warning("Rejected websocket connection: %s", exc.message)
        await websocket.close(code=WS_UNAUTHORIZED, reason=exc.message)
        return

    await websocket.accept()
    manager = hub.manager
    try:
        await session.connect(user, websocket)
        await manager.send(websocket, "connected", {"userId": user["_id"], "username": user.get("username")})
        dispatcher = EventDispatcher(chat, user)
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(websocket, manager, dispatcher, raw)
    except WebSocketDisconnect:
        pass
    finally:
        try:
            await session.disconnect(user, websocket)
        except Exception:
            logger.exception("Disconnect cleanup failed for user %s", user["_id"])


async def _handle_frame(websocket: WebSocket, manager, dispatcher: EventDispatcher, raw: str) -> None:
    ack = None
    try:
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError("Frames must be JSON objects")
        frame = parse(ClientFrame, body)
        ack = frame.ack
        result = await dispatcher.dispatch(frame.event, frame.data)
    except ChatError as exc:
        logger.warning("Rejected %s from connection: %s", type(exc).__name__, exc.message)
        await _reply_error(websocket, manager, ack, exc.message)
        return
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception("Unhandled error while processing a frame")
        await _reply_error(websocket, manager, ack, "Internal server error")
        return
    if ack is not None:
        await manager.send(websocket, "ack", {"ack": ack, **result})


async def _reply_error(websocket: WebSocket, manager, ack, message: str) -> None:
    await manager.send(websocket, "error", {"message": message})
    if ack is not None:
        await manager.send(websocket, "ack", {"ack": ack, "error": message})
