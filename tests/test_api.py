"""Tests for the REST surface: accounts, directory, conversations, uploads."""
from conftest import auth_header, next_event


def test_health(app_client):
    res = app_client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "message": "Server is running"}


def test_register_login_me(app_client):
    res = app_client.post("/auth/register", json={"username": "alice", "password": "secret1", "email": "a@example.com"})
    assert res.status_code == 201
    user_id = res.json()["id"]

    dup = app_client.post("/auth/register", json={"username": "alice", "password": "secret1"})
    assert dup.status_code == 422
    assert dup.json() == {"error": "Username already registered"}

    bad = app_client.post("/auth/login", json={"username": "alice", "password": "wrong!"})
    assert bad.status_code == 401

    login = app_client.post("/auth/login", json={"username": "alice", "password": "secret1"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = app_client.get("/auth/me", headers=auth_header(token))
    assert me.json() == {"id": user_id, "username": "alice", "email": "a@example.com"}


def test_protected_routes_require_token(app_client):
    assert app_client.get("/users").status_code == 401
    assert app_client.get("/conversations", headers=auth_header("garbage")).status_code == 401


def test_find_or_create_is_idempotent_and_commutative(app_client, register):
    alice_id, alice_token = register("alice")
    bob_id, bob_token = register("bob")

    first = app_client.post("/conversations/find-or-create", json={"otherUserId": bob_id}, headers=auth_header(alice_token))
    again = app_client.post("/conversations/find-or-create", json={"otherUserId": bob_id}, headers=auth_header(alice_token))
    reverse = app_client.post("/conversations/find-or-create", json={"otherUserId": alice_id}, headers=auth_header(bob_token))

    assert first.json()["id"] == again.json()["id"] == reverse.json()["id"]
    assert sorted(first.json()["participants"]) == sorted([alice_id, bob_id])


def test_find_or_create_errors(app_client, register):
    alice_id, alice_token = register("alice")
    headers = auth_header(alice_token)

    assert app_client.post("/conversations/find-or-create", json={"otherUserId": alice_id}, headers=headers).status_code == 422
    assert app_client.post("/conversations/find-or-create", json={}, headers=headers).status_code == 422
    missing = app_client.post("/conversations/find-or-create", json={"otherUserId": "64b000000000000000000000"}, headers=headers)
    assert missing.status_code == 404


def test_directory_and_conversation_list(app_client, register):
    alice_id, alice_token = register("alice")
    bob_id, bob_token = register("bob")

    [entry] = app_client.get("/users", headers=auth_header(bob_token)).json()
    assert entry["id"] == alice_id
    assert entry["conversationId"] is None
    assert entry["lastMessage"] is None
    assert entry["unreadCount"] == 0

    cid = app_client.post("/conversations/find-or-create", json={"otherUserId": bob_id}, headers=auth_header(alice_token)).json()["id"]
    with app_client.websocket_connect(f"/ws?token={alice_token}") as ws:
        next_event(ws, "connected")
        for text in ("first", "second"):
            ws.send_json({"event": "message:send", "data": {"conversationId": cid, "text": text}, "ack": text})
            next_event(ws, "ack")

    [entry] = app_client.get("/users", headers=auth_header(bob_token)).json()
    assert entry["conversationId"] == cid
    assert entry["lastMessage"]["text"] == "second"
    assert entry["unreadCount"] == 2

    listing = app_client.get("/conversations", headers=auth_header(bob_token)).json()
    assert [c["id"] for c in listing["items"]] == [cid]
    assert listing["items"][0]["unreadCount"] == 2
    assert listing["items"][0]["lastMessagePreview"] == "second"

    alice_view = app_client.get("/conversations", headers=auth_header(alice_token)).json()
    assert alice_view["items"][0]["unreadCount"] == 0


def test_history_forbidden_for_outsider(app_client, register):
    _, alice_token = register("alice")
    bob_id, _ = register("bob")
    _, carol_token = register("carol")
    cid = app_client.post("/conversations/find-or-create", json={"otherUserId": bob_id}, headers=auth_header(alice_token)).json()["id"]

    res = app_client.get(f"/conversations/{cid}/messages", headers=auth_header(carol_token))
    assert res.status_code == 403
    assert res.json() == {"error": "Access denied"}


def test_presence_endpoint(app_client, register):
    alice_id, alice_token = register("alice")
    res = app_client.get(f"/presence/{alice_id}", headers=auth_header(alice_token))
    assert res.json() == {"userId": alice_id, "isOnline": False, "lastSeen": None}
    assert app_client.get("/presence/64b000000000000000000000", headers=auth_header(alice_token)).status_code == 404


def test_upload_and_serve(app_client, register):
    _, token = register("alice")
    content = b"\x89PNG fake image bytes"

    res = app_client.post("/uploads", files={"file": ("cat.png", content, "image/png")}, headers=auth_header(token))

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["fileUrl"].startswith("/uploads/images/")
    assert body["fileName"] == "cat.png"
    assert body["fileSize"] == len(content)
    assert body["messageType"] == "image"
    assert app_client.get(body["fileUrl"]).content == content


def test_upload_rejections(app_client, register):
    _, token = register("alice")
    headers = auth_header(token)

    too_big = app_client.post("/uploads", files={"file": ("big.pdf", b"x" * 2048, "application/pdf")}, headers=headers)
    assert too_big.status_code == 422
    assert too_big.json() == {"error": "File too large"}

    wrong_type = app_client.post("/uploads", files={"file": ("run.sh", b"echo", "application/x-sh")}, headers=headers)
    assert wrong_type.status_code == 422

    voice = app_client.post("/uploads", files={"file": ("note.ogg", b"OggS", "audio/ogg")}, headers=headers)
    assert voice.json()["messageType"] == "audio"
    assert voice.json()["fileUrl"].startswith("/uploads/audio/")
