import pytest

from chatrooms.services.connection_manager import ConnectionManager
from chatrooms.services.message_router import MessageRouter
from tests.fakes import FakeStore, FakeWebSocket


@pytest.fixture
def registry():
    return ConnectionManager()


@pytest.fixture
def store():
    s = FakeStore()
    s.add_user("u1", "Alice", "alice@example.com")
    s.add_user("u2", "Bob", "bob@example.com")
    s.add_user("u3", "Carol", "carol@example.com")
    return s


@pytest.fixture
def router(registry, store):
    return MessageRouter(registry, store)


@pytest.fixture
def connect(registry):
    """Register a FakeWebSocket and return (connection_id, socket)."""

    async def _connect(user_id=None, fail=False):
        ws = FakeWebSocket(fail=fail)
        connection_id = await registry.connect(ws, user_id)
        return connection_id, ws

    return _connect
