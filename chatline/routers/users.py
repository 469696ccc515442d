from fastapi import APIRouter, Depends

from chatline.database.connection import mongo_db_dependency
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.user_repository import UserRepository
from chatline.services.user_service import UserService
from chatline.utils.dependencies import get_current_user


router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(db = Depends(mongo_db_dependency)) -> UserService:
    return UserService(UserRepository(db), ConversationRepository(db))


@router.get("")
async def list_users(current_user: dict = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    return await service.list_directory(current_user["_id"])
