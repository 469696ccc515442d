from datetime import datetime
from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    username: str
    email: Optional[str]
    hashed_password: str
    # presence
    is_online: bool
    last_seen: Optional[datetime]
    created_at: datetime
