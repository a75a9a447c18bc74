import asyncio
import logging

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chatrooms.core import state
from chatrooms.core.config import settings
from chatrooms.core.security import create_access_token
from chatrooms.main import app, log_listener_exit
from chatrooms.services.connection_manager import ConnectionManager
from chatrooms.services.message_router import MessageRouter


@pytest.fixture
def chat(monkeypatch, store):
    """Swap the process singletons for a fresh registry and the fake store."""
    registry = ConnectionManager()
    message_router = MessageRouter(registry, store)
    monkeypatch.setattr(state, "connection_manager", registry)
    monkeypatch.setattr(state, "message_store", store)
    monkeypatch.setattr(state, "message_router", message_router)
    monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")
    return message_router


@pytest.fixture
def client(chat):
    with TestClient(app) as c:
        yield c


def bearer(user_id, email):
    return {"Authorization": f"Bearer {create_access_token(user_id, email)}"}


def test_join_then_room_message(client):
    with client.websocket_connect("/ws?user_id=u1") as alice, client.websocket_connect("/ws?user_id=u2") as bob:
        alice.send_json({"action": "joinRoom", "room": "general"})
        assert alice.receive_json() == {"type": "joinedRoom", "room": "general", "message": "Joined room: general"}
        bob.send_json({"action": "joinRoom", "room": "general"})
        assert bob.receive_json()["type"] == "joinedRoom"

        alice.send_json({"action": "sendMessage", "sender": "u1", "room": "general", "content": "hello"})

        for ws in (alice, bob):
            frame = ws.receive_json()
            assert frame["type"] == "newMessage"
            assert frame["data"]["content"] == "hello"
            assert frame["data"]["room"] == "general"
            assert frame["data"]["sender"]["name"] == "Alice"


def test_direct_message_over_the_wire(client, store):
    with client.websocket_connect("/ws?user_id=u1") as alice, client.websocket_connect("/ws?user_id=u2") as bob:
        # round trip so both connections are registered before sending
        bob.send_json({"action": "joinRoom", "room": "sync"})
        bob.receive_json()

        alice.send_json({"action": "sendMessage", "sender": "u1", "receiver": "u2", "content": "psst"})

        assert alice.receive_json()["data"]["receiver"]["id"] == "u2"
        assert bob.receive_json()["data"]["content"] == "psst"
    assert len(store.messages) == 1


def test_validation_error_goes_to_sender(client, store):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "sendMessage", "sender": "u1", "content": ""})
        assert ws.receive_json() == {"type": "error", "message": "Sender and content are required"}
    assert store.messages == []


def test_invalid_frames_keep_connection_open(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}

        ws.send_text("[1, 2]")
        assert ws.receive_json() == {"type": "error", "message": "Expected a JSON object"}

        ws.send_json({"action": "dance"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown action: dance"}

        ws.send_json({"action": "joinRoom", "room": "still-here"})
        assert ws.receive_json()["type"] == "joinedRoom"


def test_disconnect_cleans_up_registry(client, chat):
    with client.websocket_connect("/ws?user_id=u1") as ws:
        ws.send_json({"action": "joinRoom", "room": "general"})
        ws.receive_json()
        assert chat.registry.get_rooms_info() == {"general": {"member_count": 1}}

    response = client.get("/rooms")
    assert response.json() == {}
    assert chat.registry.connection_count == 0


def test_token_identity_overrides_user_id(client, chat):
    token = create_access_token("u2", "bob@example.com")
    with client.websocket_connect(f"/ws?user_id=u1&token={token}") as ws:
        ws.send_json({"action": "joinRoom", "room": "sync"})
        ws.receive_json()
        assert set(chat.registry.user_connections) == {"u2"}


def test_bad_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()


def test_require_auth_refuses_anonymous_and_spoofing(client, chat, store):
    chat.require_auth = True

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?user_id=u1") as ws:
            ws.receive_json()

    token = create_access_token("u1", "alice@example.com")
    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"action": "sendMessage", "sender": "u2", "content": "spoof"})
        assert ws.receive_json()["message"] == "Sender does not match the authenticated user"

        ws.send_json({"action": "sendMessage", "sender": "u1", "content": "legit"})
        assert ws.receive_json()["data"]["content"] == "legit"
    assert [m.content for m in store.messages] == ["legit"]


def test_root_and_health(client):
    assert client.get("/").json()["endpoints"]["websocket"] == "/ws"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["connections"] == 0


def test_rooms_endpoints(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "joinRoom", "room": "general"})
        ws.receive_json()

        assert client.get("/rooms").json() == {"general": {"member_count": 1}}
        assert client.get("/rooms/general").json() == {"room": "general", "member_count": 1}
        assert client.get("/rooms/empty").status_code == 404


def test_metrics_count_messages(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "sendMessage", "sender": "u1", "content": "one"})
        ws.receive_json()
        ws.send_json({"action": "sendMessage", "content": "missing sender"})
        ws.receive_json()

    metrics = client.get("/metrics").json()
    assert metrics["total_messages"] == 1
    assert metrics["rejected_messages"] == 1


def test_message_history_requires_token(client):
    assert client.get("/messages").status_code == 401


def test_message_history(client, store):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "joinRoom", "room": "general"})
        ws.receive_json()
        for data in (
            {"sender": "u1", "content": "room hello", "room": "general"},
            {"sender": "u1", "content": "to bob", "receiver": "u2"},
            {"sender": "u3", "content": "note to self", "receiver": "u3"},
        ):
            ws.send_json({"action": "sendMessage", **data})
            ws.receive_json()

    own = client.get("/messages", headers=bearer("u2", "bob@example.com")).json()
    assert [m["content"] for m in own] == ["to bob"]
    assert own[0]["sender"]["email"] == "alice@example.com"
    assert "createdAt" in own[0]

    room = client.get("/messages?room=general", headers=bearer("u3", "carol@example.com")).json()
    assert [m["content"] for m in room] == ["room hello"]

    assert client.get("/messages?limit=0", headers=bearer("u2", "bob@example.com")).status_code == 422


async def test_listener_failure_is_logged(caplog):
    async def listen():
        raise ConnectionError("redis went away")

    task = asyncio.create_task(listen())
    await asyncio.gather(task, return_exceptions=True)

    with caplog.at_level(logging.ERROR, logger="chatrooms.main"):
        log_listener_exit(task)

    assert "Redis listener stopped: redis went away" in caplog.text


async def test_cancelled_listener_is_not_logged(caplog):
    task = asyncio.create_task(asyncio.sleep(3600))
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    with caplog.at_level(logging.ERROR, logger="chatrooms.main"):
        log_listener_exit(task)

    assert caplog.records == []
