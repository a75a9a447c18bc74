# chatrooms/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter

from chatrooms.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns database reachability plus live connection and room counts.
    Status is "degraded" when the database does not answer.
    """
    manager = state.message_router.registry
    database_ok = await state.message_router.store.ping()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": database_ok,
        "connections": manager.connection_count,
        "active_rooms": len(manager.rooms),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
