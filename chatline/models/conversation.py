from datetime import datetime
from typing import List, Optional, TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: str
    # exactly two user ids, sorted
    participants: List[str]
    # "<lo>:<hi>", unique per unordered pair
    pair_key: str
    last_message_id: Optional[str]
    last_message_at: Optional[datetime]
    last_message_preview: Optional[str]
    # per-user unread counters (user_id -> count)
    unread_counters: dict[str, int]
    created_at: datetime
