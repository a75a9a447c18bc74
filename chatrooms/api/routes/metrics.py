# chatrooms/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from chatrooms.core import state
from chatrooms.core.config import settings

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Message throughput and capacity figures for this instance.

    Counters reset on restart; with PUB_SUB_SERVICE=redis each instance
    reports only the messages it accepted itself.
    """
    message_router = state.message_router
    manager = message_router.registry

    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()

    if uptime_seconds > 0:
        messages_per_second = message_router.messages_routed / uptime_seconds
    else:
        messages_per_second = 0

    return {
        # Statistics
        "total_messages": message_router.messages_routed,
        "rejected_messages": message_router.messages_rejected,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Capacity
        "concurrent_connections": manager.connection_count,
        "identified_users": len(manager.user_connections),
        "active_rooms_with_members": len(manager.rooms),

        "pub_sub_service": settings.PUB_SUB_SERVICE,
    }
