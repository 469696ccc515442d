from typing import Optional

from fastapi import Depends, Header
from fastapi.requests import HTTPConnection

from chatline.config import Settings
from chatline.database.connection import mongo_db_dependency
from chatline.errors import AuthenticationError
from chatline.realtime.hub import ChatHub
from chatline.repositories.user_repository import UserRepository
from chatline.utils.security import bearer_token, decode_access_token


def get_hub(conn: HTTPConnection) -> ChatHub:
    return conn.app.state.hub


def get_app_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    db=Depends(mongo_db_dependency),
) -> dict:
    token = bearer_token(authorization)
    if not token:
        raise AuthenticationError("No token provided")
    payload = decode_access_token(token, settings)
    user = await UserRepository(db).get_user_by_id(payload.sub)
    if not user:
        raise AuthenticationError("User not found")
    return user
