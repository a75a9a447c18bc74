# chatrooms/api/websocket.py

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from chatrooms.core import state
from chatrooms.core.exceptions import AuthenticationError
from chatrooms.core.security import decode_token

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    user_id: Optional[str] = None,
    token: Optional[str] = None,
):
    """
    WebSocket endpoint for real-time chat.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join Room:
        {"action": "joinRoom", "room": "general"}
        Response: {"type": "joinedRoom", "room": "general", "message": "Joined room: general"}
        (no response when room is empty or missing)

    Send Message:
        {
            "action": "sendMessage",
            "sender": "<user id>",
            "receiver": "<user id, optional>",
            "content": "<text>",
            "room": "<room, optional>"
        }
        Delivered as newMessage to the room if given, else to the sender
        and the receiver's connections, else to everyone.

    Server -> Client Messages:
    -------------------------
    New Message:
        {"type": "newMessage", "data": {"id": "...", "sender": {"id", "name", "email"},
         "receiver": {...} | null, "content": "...", "room": "..." | null, "createdAt": "..."}}

    Error (originating connection only):
        {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects, optionally with ?token=<jwt> and/or ?user_id=<id>.
       A verified token's id claim wins over user_id. With
       CHAT_REQUIRE_AUTH=true a valid token is mandatory.
    2. Direct messages addressed to that user id reach this connection.
    3. Client sends joinRoom for each room it wants.
    4. On disconnect, removed from every room and its user channel.
    """
    message_router = state.message_router
    manager = message_router.registry

    if token or message_router.require_auth:
        try:
            claims = decode_token(token or "")
        except AuthenticationError as e:
            logger.warning("Rejected WebSocket connection: %s", e.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
            return
        user_id = claims["id"]

    connection_id = await manager.connect(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_to_connection(connection_id, "error", {"message": "Invalid JSON"})
                continue

            if not isinstance(message, dict):
                await manager.send_to_connection(connection_id, "error", {"message": "Expected a JSON object"})
                continue

            action = message.get("action")
            logger.debug(f"Websocket input on {connection_id}: Action: {action}")

            if action == "joinRoom":
                await message_router.join_room(connection_id, message)

            elif action == "sendMessage":
                await message_router.send_message(connection_id, message)

            else:
                await manager.send_to_connection(
                    connection_id,
                    "error",
                    {"message": f"Unknown action: {action}"},
                )

    except WebSocketDisconnect:
        manager.disconnect(connection_id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection_id, e)
        manager.disconnect(connection_id)
