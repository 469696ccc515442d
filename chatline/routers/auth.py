from fastapi import APIRouter, Depends, status

from chatline.config import Settings
from chatline.database.connection import mongo_db_dependency
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.user import Token, UserCreate, UserLogin, UserPublic
from chatline.services.user_service import UserService
from chatline.utils.dependencies import get_app_settings, get_current_user
from chatline.utils.security import create_access_token


router = APIRouter(prefix="/auth", tags=["auth"])


def get_user_service(db = Depends(mongo_db_dependency)) -> UserService:
    return UserService(UserRepository(db))


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register(body: UserCreate, service: UserService = Depends(get_user_service)):
    return await service.register_user(body.username, body.password, body.email)


@router.post("/login", response_model=Token)
async def login(body: UserLogin, service: UserService = Depends(get_user_service), settings: Settings = Depends(get_app_settings)):
    user = await service.authenticate_user(body.username, body.password)
    return Token(access_token=create_access_token(user["_id"], settings))


@router.get("/me", response_model=UserPublic)
async def me(current_user: dict = Depends(get_current_user)):
    return UserPublic(id=current_user["_id"], username=current_user["username"], email=current_user.get("email"))
