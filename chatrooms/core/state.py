# chatrooms/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from chatrooms.core.config import settings
from chatrooms.core.database import engine
from chatrooms.services.connection_manager import ConnectionManager
from chatrooms.services.message_router import MessageRouter
from chatrooms.services.message_store import MessageStore

# Process-wide singletons, wired together once. Handlers receive them by
# reference through the router rather than reaching in here.
connection_manager = ConnectionManager()
message_store = MessageStore(engine)
message_router = MessageRouter(
    connection_manager,
    message_store,
    require_auth=settings.CHAT_REQUIRE_AUTH,
    max_length=settings.MESSAGE_MAX_LENGTH,
)

# Set on startup when PUB_SUB_SERVICE=redis
redis_service = None

app_start_time: datetime = datetime.now(timezone.utc)
