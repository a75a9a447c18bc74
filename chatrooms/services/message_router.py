# chatrooms/services/message_router.py

from __future__ import annotations

import enum
import logging
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from chatrooms.core.exceptions import PersistenceError, ValidationError
from chatrooms.models.models import JoinRoomRequest, MessageOut, SendMessageRequest, UserSummary
from chatrooms.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

NEW_MESSAGE = "newMessage"
JOINED_ROOM = "joinedRoom"
ERROR = "error"


class DeliveryMode(str, enum.Enum):
    ROOM = "room"
    DIRECT = "direct"
    BROADCAST = "broadcast"


def resolve_delivery_mode(room: Optional[str], receiver: Optional[str]) -> DeliveryMode:
    """Room beats receiver; neither means everyone."""
    if room:
        return DeliveryMode.ROOM
    if receiver:
        return DeliveryMode.DIRECT
    return DeliveryMode.BROADCAST


# ============================================================================
# MESSAGE ROUTER
# ============================================================================

class MessageRouter:
    """
    Handles joinRoom and sendMessage events for one process.

    Send flow:
        1. Validate sender/content (error to the originator only)
        2. Persist through the store (must commit before any delivery)
        3. Resolve sender/receiver to display attributes
        4. Route: room broadcast, else direct pair, else everyone

    Args:
        registry: Live connections. Also used for replies to the originator.
        store: Persistence gateway (create_message / resolve_users).
        fanout: Where room/user/global deliveries go. Defaults to the
            registry; the Redis service swaps itself in for multi-instance.
        require_auth: Reject sends whose sender differs from the identity
            the connection authenticated as.
        max_length: Upper bound on message content length.
    """

    def __init__(
        self,
        registry: ConnectionManager,
        store: Any,
        fanout: Any = None,
        require_auth: bool = False,
        max_length: int = 5000,
    ) -> None:
        self.registry = registry
        self.store = store
        self.fanout = fanout or registry
        self.require_auth = require_auth
        self.max_length = max_length
        self.messages_routed = 0
        self.messages_rejected = 0

    async def join_room(self, connection_id: str, data: dict) -> None:
        try:
            request = JoinRoomRequest.model_validate(data)
            if not request.room:
                return
            if not self.registry.join_room(connection_id, request.room):
                return
            await self.registry.send_to_connection(
                connection_id,
                JOINED_ROOM,
                {"room": request.room, "message": f"Joined room: {request.room}"},
            )
        except Exception:
            logger.exception("Join room error on %s", connection_id)
            await self._emit_error(connection_id, "Failed to join room")

    async def send_message(self, connection_id: str, data: dict) -> Optional[dict]:
        """
        Validate, persist and route one message.

        Returns:
            The newMessage payload that was delivered, or None when the send
            was rejected or failed. Failures are reported to the originator
            as an error event, never raised.
        """
        try:
            request = self.validate(connection_id, data)
        except ValidationError as e:
            self.messages_rejected += 1
            logger.info("Rejected message on %s: %s", connection_id, e.message)
            await self._emit_error(connection_id, e.message)
            return None

        try:
            message = await self.store.create_message(
                sender=request.sender,
                content=request.content,
                receiver=request.receiver,
                room=request.room,
            )
        except PersistenceError as e:
            logger.error("Send message error on %s: %s", connection_id, e.message)
            await self._emit_error(connection_id, "Failed to send message")
            return None
        except Exception:
            logger.exception("Send message error on %s", connection_id)
            await self._emit_error(connection_id, "Failed to send message")
            return None

        # The record is durable from here on; later failures never roll it back
        try:
            out = (await self.render([message]))[0]
            payload = out.to_payload()
            mode = await self.route(connection_id, request, payload)
        except Exception:
            logger.exception("Delivery failed for persisted message %s", message.id)
            await self._emit_error(connection_id, "Failed to deliver message")
            return None

        self.messages_routed += 1
        logger.info("📨 Message %s from %s routed via %s", message.id, request.sender, mode.value)
        return payload

    def validate(self, connection_id: str, data: dict) -> SendMessageRequest:
        try:
            request = SendMessageRequest.model_validate(data)
        except PydanticValidationError:
            raise ValidationError("Invalid message payload")

        if not request.sender or not request.content:
            raise ValidationError("Sender and content are required")

        if len(request.content) > self.max_length:
            raise ValidationError(f"Message content exceeds {self.max_length} characters")

        if self.require_auth:
            identity = self.registry.get_user(connection_id)
            if identity != request.sender:
                raise ValidationError("Sender does not match the authenticated user")

        return request

    async def route(self, connection_id: str, request: SendMessageRequest, payload: dict) -> DeliveryMode:
        frame = {"data": payload}
        mode = resolve_delivery_mode(request.room, request.receiver)

        if mode is DeliveryMode.ROOM:
            await self.fanout.broadcast_to_room(request.room, NEW_MESSAGE, frame)
        elif mode is DeliveryMode.DIRECT:
            await self.registry.send_to_connection(connection_id, NEW_MESSAGE, frame)
            await self.fanout.deliver_to_user(request.receiver, NEW_MESSAGE, frame, exclude=connection_id)
        else:
            await self.fanout.broadcast_to_all(NEW_MESSAGE, frame)

        return mode

    async def render(self, messages: Iterable[Any]) -> List[MessageOut]:
        """Build outbound payloads, resolving every referenced user in one lookup."""
        messages = list(messages)
        ids = set()
        for m in messages:
            ids.add(m.sender_id)
            if m.receiver_id:
                ids.add(m.receiver_id)
        users = await self.store.resolve_users(ids)

        def summary(user_id):
            if user_id not in users:
                logger.warning("User %s referenced by a message was not found", user_id)
                return UserSummary(id=user_id)
            return users[user_id]

        return [
            MessageOut(
                id=m.id,
                sender=summary(m.sender_id),
                receiver=summary(m.receiver_id) if m.receiver_id else None,
                content=m.content,
                room=m.room,
                created_at=m.created_at,
            )
            for m in messages
        ]

    async def _emit_error(self, connection_id: str, message: str) -> None:
        await self.registry.send_to_connection(connection_id, ERROR, {"message": message})
