"""Shared fixtures: an isolated in-memory Mongo and a fresh ChatHub per test."""
import json

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from chatline.config import Settings
from chatline.main import create_app
from chatline.realtime.hub import ChatHub
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.user_repository import UserRepository
from chatline.services.chat_service import ChatService
from chatline.services.session_service import SessionService
from chatline.utils.security import create_access_token, hash_password


class FakeConnection:
    """Stands in for a websocket; records every event pushed to it."""

    def __init__(self) -> None:
        self.frames = []

    async def send_text(self, data: str) -> None:
        self.frames.append(json.loads(data))

    def events(self, name=None):
        return [f["data"] for f in self.frames if name is None or f["event"] == name]

    def names(self):
        return [f["event"] for f in self.frames]

    def clear(self):
        self.frames.clear()


class BrokenConnection:

    async def send_text(self, data: str) -> None:
        raise RuntimeError("socket closed")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        mongodb_db="chatline_test",
        jwt_secret_key="test-secret",
        media_dir=str(tmp_path / "media"),
        max_upload_bytes=1024,
        log_level="WARNING",
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["chatline_test"]


@pytest.fixture
def hub():
    return ChatHub()


@pytest.fixture
def chat(db, hub):
    return ChatService(MessageRepository(db), ConversationRepository(db), hub)


@pytest.fixture
def session(db, hub, chat, settings):
    return SessionService(UserRepository(db), ConversationRepository(db), chat, hub, settings)


@pytest_asyncio.fixture
async def alice(db):
    repo = UserRepository(db)
    user_id = await repo.create_user("alice", hash_password("secret1"))
    return await repo.get_user_by_id(user_id)


@pytest_asyncio.fixture
async def bob(db):
    repo = UserRepository(db)
    user_id = await repo.create_user("bob", hash_password("secret2"))
    return await repo.get_user_by_id(user_id)


@pytest_asyncio.fixture
async def carol(db):
    repo = UserRepository(db)
    user_id = await repo.create_user("carol", hash_password("secret3"))
    return await repo.get_user_by_id(user_id)


@pytest_asyncio.fixture
async def conversation(db, alice, bob):
    return await ConversationRepository(db).get_or_create_one_to_one(alice["_id"], bob["_id"])


@pytest.fixture
def app_client(settings):
    """TestClient over an app wired to a private in-memory Mongo."""
    app = create_app(settings, mongo_client=AsyncMongoMockClient())
    with TestClient(app) as client:
        yield client


@pytest.fixture
def register(app_client, settings):
    """Register a user over HTTP; returns (user_id, token)."""

    def _register(username, password="password1"):
        res = app_client.post("/auth/register", json={"username": username, "password": password})
        assert res.status_code == 201, res.text
        user_id = res.json()["id"]
        return user_id, create_access_token(user_id, settings)

    return _register


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def next_event(ws, name, limit=20):
    """Read frames until ``name`` arrives; returns its data."""
    for _ in range(limit):
        frame = ws.receive_json()
        if frame["event"] == name:
            return frame["data"]
    raise AssertionError(f"{name} not received within {limit} frames")
