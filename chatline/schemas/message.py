"""Wire schemas for the websocket protocol.

Client frames look like ``{"event": "message:send", "data": {...}, "ack": 3}``;
server frames are ``{"event": <name>, "data": {...}}``. Field names on the
wire are camelCase, stored documents are snake_case.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from chatline.models.message import MessageKind


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ClientFrame(BaseModel):

    event: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    ack: Optional[Union[int, str]] = None


class MessageSendRequest(BaseModel):

    conversationId: str = Field(min_length=1)
    text: Optional[str] = None
    messageType: Optional[MessageKind] = None
    fileUrl: Optional[str] = None
    fileName: Optional[str] = None
    fileSize: Optional[int] = Field(default=None, ge=0)
    mimeType: Optional[str] = None
    clientMessageId: Optional[str] = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def _check_payload(self):
        text = (self.text or "").strip()
        url = (self.fileUrl or "").strip()
        if not text and not url:
            raise ValueError("Either text or fileUrl is required")
        if self.messageType is None:
            self.messageType = "text" if not url else kind_from_mime(self.mimeType)
        if self.messageType == "text" and not text:
            raise ValueError("text is required for text messages")
        if self.messageType != "text" and not url:
            raise ValueError("fileUrl is required for media messages")
        self.text = text
        self.fileUrl = url or None
        return self


class MessageDeliveredRequest(BaseModel):

    messageId: str = Field(min_length=1)


class MessageReadRequest(BaseModel):

    conversationId: str = Field(min_length=1)
    messageIds: List[str] = Field(min_length=1)


class TypingRequest(BaseModel):

    conversationId: str = Field(min_length=1)


class MessagePayload(BaseModel):
    """Canonical server copy of a message as broadcast in ``message:new``."""

    id: str
    conversationId: str
    senderId: str
    senderUsername: Optional[str] = None
    text: str = ""
    messageType: MessageKind = "text"
    fileUrl: Optional[str] = None
    fileName: Optional[str] = None
    fileSize: Optional[int] = None
    mimeType: Optional[str] = None
    delivered: bool = False
    deliveredAt: Optional[datetime] = None
    read: bool = False
    readAt: Optional[datetime] = None
    createdAt: datetime
    clientMessageId: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any], sender_username: Optional[str] = None) -> "MessagePayload":
        delivered_at = as_utc(doc.get("delivered_at"))
        read_at = as_utc(doc.get("read_at"))
        return cls(
            id=str(doc["_id"]),
            conversationId=str(doc["conversation_id"]),
            senderId=str(doc["sender_id"]),
            senderUsername=sender_username,
            text=doc.get("text") or "",
            messageType=doc.get("message_type") or "text",
            fileUrl=doc.get("file_url"),
            fileName=doc.get("file_name"),
            fileSize=doc.get("file_size"),
            mimeType=doc.get("mime_type"),
            delivered=delivered_at is not None,
            deliveredAt=delivered_at,
            read=read_at is not None,
            readAt=read_at,
            createdAt=as_utc(doc["created_at"]),
            clientMessageId=doc.get("client_message_id"),
        )


def kind_from_mime(mime_type: Optional[str]) -> MessageKind:
    mime = (mime_type or "").lower()
    for prefix, kind in (("image/", "image"), ("video/", "video"), ("audio/", "audio")):
        if mime.startswith(prefix):
            return kind
    return "document"
