from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserBase(BaseModel):

    username: str = Field(min_length=1, max_length=64)


class UserCreate(UserBase):

    password: str = Field(min_length=6)
    email: Optional[str] = None


class UserLogin(UserBase):

    password: str


class UserPublic(UserBase):

    id: str
    email: Optional[str] = None


class PresenceOut(BaseModel):

    userId: str
    isOnline: bool
    lastSeen: Optional[datetime] = None


class Token(BaseModel):

    access_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):

    sub: str
    exp: int
