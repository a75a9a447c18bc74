# chatrooms/api/routes/root.py

from fastapi import APIRouter

from chatrooms.core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Chatrooms - real-time message distribution",
        "version": "1.0",
        "fanout": settings.PUB_SUB_SERVICE,
        "features": ["rooms", "direct_messages", "broadcast", "message_history"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms",
            "messages": "/messages",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
