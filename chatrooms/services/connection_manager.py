# chatrooms/services/connection_manager.py

from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# ============================================================================
# WEBSOCKET CONNECTION REGISTRY
# ============================================================================

class ConnectionManager:
    """
    Tracks live WebSocket connections, their room memberships and the user
    channel each one belongs to.

    Data Structures:
        connections: Maps connection_id -> WebSocket
        connection_rooms: Maps connection_id -> Set of room labels joined
        connection_users: Maps connection_id -> user_id (None if anonymous)
        rooms: Maps room label -> Set of connection_ids joined to it
               Example: {"general": {"3f2a...", "9bc1..."}}
        user_connections: Maps user_id -> Set of connection_ids registered
               as that user. Together with the members of the room
               labelled with the user id this is the user channel used
               for direct delivery.

    All mutation and fan-out happens on the event loop thread, so no locks
    are taken. Delivery is fire-and-forget: a failed send drops the
    connection instead of raising to the caller.
    """

    def __init__(self) -> None:
        self.connections: Dict[str, WebSocket] = {}
        self.connection_rooms: Dict[str, Set[str]] = {}
        self.connection_users: Dict[str, Optional[str]] = {}
        self.rooms: Dict[str, Set[str]] = {}
        self.user_connections: Dict[str, Set[str]] = {}

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    async def connect(self, websocket: WebSocket, user_id: Optional[str] = None) -> str:
        """
        Accept a new WebSocket connection and register it with no rooms.

        Args:
            websocket: The WebSocket connection object
            user_id: Identity the connection speaks for, if known. Direct
                messages addressed to this user reach the connection.

        Returns:
            The opaque connection id assigned to this socket
        """
        await websocket.accept()
        return self.register(websocket, user_id)

    def register(self, websocket: WebSocket, user_id: Optional[str] = None) -> str:
        connection_id = uuid.uuid4().hex

        self.connections[connection_id] = websocket
        self.connection_rooms[connection_id] = set()
        self.connection_users[connection_id] = user_id
        if user_id:
            self.user_connections.setdefault(user_id, set()).add(connection_id)

        logger.info("✓ Connection %s (user=%s) opened. Total: %d", connection_id, user_id, len(self.connections))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """
        Remove a connection, every room membership and its user channel entry.
        Empty rooms and channels are dropped from memory. Unknown ids are ignored.
        """
        if connection_id not in self.connections:
            return

        for room in self.connection_rooms.get(connection_id, set()):
            members = self.rooms.get(room)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self.rooms[room]

        user_id = self.connection_users.get(connection_id)
        if user_id and user_id in self.user_connections:
            self.user_connections[user_id].discard(connection_id)
            if not self.user_connections[user_id]:
                del self.user_connections[user_id]

        del self.connections[connection_id]
        del self.connection_rooms[connection_id]
        del self.connection_users[connection_id]

        logger.info("✗ Connection %s (user=%s) closed. Total: %d", connection_id, user_id, len(self.connections))

    def join_room(self, connection_id: str, room: Optional[str]) -> bool:
        """
        Add room to the connection's memberships. Joining twice changes nothing.

        Returns:
            False when room is empty or the connection is already gone
        """
        if not room or connection_id not in self.connections:
            return False

        self.rooms.setdefault(room, set()).add(connection_id)
        self.connection_rooms[connection_id].add(room)

        logger.info("→ %s joined '%s' (%d members)", connection_id, room, len(self.rooms[room]))
        return True

    def get_user(self, connection_id: str) -> Optional[str]:
        return self.connection_users.get(connection_id)

    def room_members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, set()))

    async def send_to_connection(self, connection_id: str, event: str, payload: dict) -> None:
        await self._deliver([connection_id], event, payload)

    async def broadcast_to_room(self, room: str, event: str, payload: dict) -> None:
        if room not in self.rooms:
            logger.info("[routing] Skipped broadcast: room=%s has 0 members", room)
            return

        logger.info("📨 Broadcasting %s to room %s: %d clients", event, room, len(self.rooms[room]))
        await self._deliver(self.room_members(room), event, payload)

    async def deliver_to_user(
        self,
        user_id: str,
        event: str,
        payload: dict,
        exclude: Optional[str] = None,
    ) -> None:
        # connections that joined a room labelled with the user id subscribe too
        targets = set(self.user_connections.get(user_id, set())) | self.room_members(user_id)
        targets.discard(exclude)
        if not targets:
            logger.info("[routing] No live connections for user %s", user_id)
            return

        await self._deliver(targets, event, payload)

    async def broadcast_to_all(self, event: str, payload: dict) -> None:
        logger.info("📨 Broadcasting %s to all: %d clients", event, len(self.connections))
        await self._deliver(list(self.connections), event, payload)

    async def _deliver(self, connection_ids: Iterable[str], event: str, payload: dict) -> None:
        frame = {"type": event, **payload}
        disconnected = set()

        for connection_id in connection_ids:
            websocket = self.connections.get(connection_id)
            if websocket is None:
                # Closed since the target list was built
                continue
            try:
                await websocket.send_json(frame)
            except Exception as e:
                logger.error(f"Send error to {connection_id}: {e}")
                disconnected.add(connection_id)

        for connection_id in disconnected:
            self.disconnect(connection_id)

    def get_rooms_info(self) -> Dict[str, dict]:
        """
        Active rooms with their live member counts.

        Used by the /rooms and /metrics endpoints.
        """
        return {room: {"member_count": len(members)} for room, members in self.rooms.items()}
