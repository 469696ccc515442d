from fastapi import APIRouter, Depends

from chatline.database.connection import mongo_db_dependency
from chatline.realtime.presence import PresenceStore
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.user import PresenceOut
from chatline.utils.dependencies import get_current_user


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}", response_model=PresenceOut)
async def presence(user_id: str, current_user: dict = Depends(get_current_user), db = Depends(mongo_db_dependency)):
    """Online flag and last-seen time of ``user_id``."""
    return await PresenceStore(UserRepository(db)).get(user_id)
