# chatrooms/api/routes/rooms.py

from typing import Dict

from fastapi import APIRouter, HTTPException

from chatrooms.core import state

router = APIRouter()

# ============================================================================
# ACTIVE ROOM ENDPOINTS
# ============================================================================

@router.get("/rooms")
async def list_rooms() -> Dict[str, dict]:
    """
    List rooms that currently have live members on this instance.

    Rooms are plain labels, so a room with no joined connections does not
    exist here.
    """
    return state.message_router.registry.get_rooms_info()


@router.get("/rooms/{room}")
async def get_room(room: str):
    """
    Live member count of one room.

    Raises:
        HTTPException: 404 if no connection has joined the room
    """
    members = state.message_router.registry.room_members(room)
    if not members:
        raise HTTPException(status_code=404, detail="Room has no members")

    return {"room": room, "member_count": len(members)}
