# chatrooms/api/routes/messages.py

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chatrooms.core import state
from chatrooms.core.exceptions import PersistenceError
from chatrooms.core.security import get_current_user
from chatrooms.models.models import MessageOut

router = APIRouter()


@router.get("/messages", response_model=List[MessageOut])
async def list_messages(
    room: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    current_user: Dict[str, Any] = Depends(get_current_user),
):
    """
    Persisted message history, newest first.

    With room: every message posted to that room. Without: the caller's own
    conversation, i.e. messages they sent or received.

    Raises:
        HTTPException: 401 without a valid bearer token, 503 if the store fails
    """
    message_router = state.message_router
    participant = None if room else current_user["id"]

    try:
        messages = await message_router.store.list_messages(room=room, participant=participant, limit=limit)
        return await message_router.render(messages)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)
