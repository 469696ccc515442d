from datetime import datetime
from typing import Literal, Optional, TypedDict

from bson import ObjectId


MessageKind = Literal["text", "image", "video", "document", "audio"]


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: ObjectId
    sender_id: str
    text: str
    message_type: MessageKind
    # media reference
    file_url: Optional[str]
    file_name: Optional[str]
    file_size: Optional[int]
    mime_type: Optional[str]
    created_at: datetime
    # delivery states; delivered/read are derived from these being set
    delivered_at: Optional[datetime]
    read_at: Optional[datetime]
    # client ack
    client_message_id: Optional[str]
