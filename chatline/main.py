import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from chatline.config import Settings, get_settings
from chatline.database.connection import close_mongo_connection, connect_to_mongo
from chatline.errors import ChatError
from chatline.logging_config import configure_logging
from chatline.realtime.hub import ChatHub
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.user_repository import UserRepository
from chatline.routers.auth import router as auth_router
from chatline.routers.chat import router as chat_router
from chatline.routers.chat import build_services
from chatline.routers.conversations import router as conversations_router
from chatline.routers.presence import router as presence_router
from chatline.routers.uploads import router as uploads_router
from chatline.routers.users import router as users_router
from chatline.services.upload_service import UploadService


logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, mongo_client=None) -> FastAPI:
    """Build the application. ``mongo_client`` replaces the motor client built
    from ``settings.mongodb_url`` (tests pass an in-memory one)."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):

        db = await connect_to_mongo(settings, mongo_client)
        await UserRepository(db).ensure_indexes()
        await ConversationRepository(db).ensure_indexes()
        await MessageRepository(db).ensure_indexes()
        UploadService(settings.media_dir, settings.max_upload_bytes).ensure_dirs()

        hub = ChatHub(typing_timeout=settings.typing_timeout_seconds)
        app.state.hub = hub
        chat, _ = build_services(db, hub, settings)
        hub.start_typing_sweeper(chat.announce_typing_stopped)
        logger.info("chatline started")
        try:
            yield
        finally:
            await hub.close()
            await close_mongo_connection()

    app = FastAPI(title="chatline", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(conversations_router)
    app.include_router(uploads_router)
    app.include_router(presence_router)
    app.include_router(chat_router)
    app.mount("/uploads", StaticFiles(directory=settings.media_dir, check_dir=False), name="uploads")

    @app.get("/health")
    async def health():
        return {"status": "ok", "message": "Server is running"}

    return app


app = create_app()
