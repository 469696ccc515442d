"""Tests for connection sessions: authentication, presence and disconnect cleanup."""
import asyncio

import pytest
from pymongo.errors import PyMongoError

from chatline.errors import AuthenticationError, NotFoundError
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.utils.security import create_access_token

from conftest import FakeConnection


@pytest.mark.asyncio
async def test_authenticate(session, settings, alice):
    user = await session.authenticate(create_access_token(alice["_id"], settings))
    assert user["_id"] == alice["_id"]

    with pytest.raises(AuthenticationError):
        await session.authenticate(None)
    with pytest.raises(AuthenticationError):
        await session.authenticate("garbage")
    with pytest.raises(AuthenticationError):
        await session.authenticate(create_access_token(alice["_id"], settings, expires_minutes=-1))


@pytest.mark.asyncio
async def test_authenticate_unknown_user(session, settings):
    token = create_access_token("64b000000000000000000000", settings)
    with pytest.raises(AuthenticationError):
        await session.authenticate(token)


@pytest.mark.asyncio
async def test_connect_marks_online_and_notifies_partners(session, hub, alice, bob, carol, conversation):
    bob_conn, carol_conn = FakeConnection(), FakeConnection()
    hub.manager.join(bob["_id"], bob_conn)
    hub.manager.join(carol["_id"], carol_conn)

    await session.connect(alice, FakeConnection())

    assert bob_conn.events("user:status") == [{"userId": alice["_id"], "isOnline": True, "lastSeen": None}]
    # carol shares no conversation with alice
    assert carol_conn.events("user:status") == []
    presence = await session.presence.get(alice["_id"])
    assert presence.isOnline is True


@pytest.mark.asyncio
async def test_offline_only_after_last_connection(session, hub, alice, bob, conversation):
    bob_conn = FakeConnection()
    hub.manager.join(bob["_id"], bob_conn)
    tab, phone = FakeConnection(), FakeConnection()
    await session.connect(alice, tab)
    await session.connect(alice, phone)
    bob_conn.clear()

    await session.disconnect(alice, tab)
    assert bob_conn.events("user:status") == []
    assert (await session.presence.get(alice["_id"])).isOnline is True

    await session.disconnect(alice, phone)
    statuses = bob_conn.events("user:status")
    assert len(statuses) == 1
    assert statuses[0]["isOnline"] is False
    assert statuses[0]["lastSeen"] is not None
    presence = await session.presence.get(alice["_id"])
    assert presence.isOnline is False
    assert presence.lastSeen is not None
    assert not hub.manager.is_connected(alice["_id"])


@pytest.mark.asyncio
async def test_disconnect_clears_typing(session, chat, hub, alice, bob, conversation):
    bob_conn = FakeConnection()
    hub.manager.join(bob["_id"], bob_conn)
    conn = FakeConnection()
    await session.connect(alice, conn)
    await chat.start_typing(alice, conversation["_id"])

    await session.disconnect(alice, conn)

    assert not hub.typing.is_typing(conversation["_id"], alice["_id"])
    assert bob_conn.events("typing:stop") == [{"conversationId": conversation["_id"], "userId": alice["_id"]}]


@pytest.mark.asyncio
async def test_reconnect_during_disconnect_stays_online(session, chat, hub, alice, bob, conversation):
    """A connection opened while the previous one is still cleaning up keeps the user online."""
    bob_conn = FakeConnection()
    hub.manager.join(bob["_id"], bob_conn)
    old, new = FakeConnection(), FakeConnection()
    await session.connect(alice, old)
    await chat.start_typing(alice, conversation["_id"])
    bob_conn.clear()

    await asyncio.gather(session.disconnect(alice, old), session.connect(alice, new))

    assert hub.manager.is_connected(alice["_id"])
    assert (await session.presence.get(alice["_id"])).isOnline is True
    statuses = bob_conn.events("user:status")
    assert statuses and statuses[-1]["isOnline"] is True


@pytest.mark.asyncio
async def test_disconnect_goes_offline_when_typing_stop_fails(session, chat, hub, alice, bob, conversation, monkeypatch):
    bob_conn = FakeConnection()
    hub.manager.join(bob["_id"], bob_conn)
    conn = FakeConnection()
    await session.connect(alice, conn)
    await chat.start_typing(alice, conversation["_id"])
    bob_conn.clear()

    async def unavailable(self, conversation_id):
        raise PyMongoError("down")

    monkeypatch.setattr(ConversationRepository, "get_by_id", unavailable)

    await session.disconnect(alice, conn)

    presence = await session.presence.get(alice["_id"])
    assert presence.isOnline is False
    assert presence.lastSeen is not None
    assert not hub.typing.is_typing(conversation["_id"], alice["_id"])
    assert [s["isOnline"] for s in bob_conn.events("user:status")] == [False]


@pytest.mark.asyncio
async def test_presence_of_unknown_user(session):
    with pytest.raises(NotFoundError):
        await session.presence.get("64b000000000000000000000")
