# chatrooms/main.py

from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrooms.core import state
from chatrooms.core.config import settings
from chatrooms.core.logging import setup_logging, get_logger
from chatrooms.services.redis_pub_sub import AsyncRedisPubSubService
from chatrooms.api.routes import root, health, metrics, rooms, messages
from chatrooms.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Chatrooms - Real-time Message Distribution")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(rooms.router)
app.include_router(messages.router)

# WebSocket routes
app.include_router(websocket_module.router)

_listener_task: asyncio.Task | None = None


def log_listener_exit(task: asyncio.Future) -> None:
    """Log why the Redis listener task ended."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("❌ Redis listener stopped: %s", exc, exc_info=exc)


@app.on_event("startup")
async def startup_event():
    global _listener_task
    logger.info("🚀 Application starting - fan-out via %s", settings.PUB_SUB_SERVICE)

    await state.message_router.store.create_schema()

    if settings.PUB_SUB_SERVICE == "redis":
        redis_service = AsyncRedisPubSubService(
            state.message_router.registry,
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            access_key=settings.REDIS_ACCESS_KEY,
            ssl=settings.REDIS_SSL,
            prefix=settings.REDIS_CHANNEL_PREFIX,
        )
        await redis_service.connect()

        state.redis_service = redis_service
        state.message_router.fanout = redis_service

        # Start subscriber in background
        _listener_task = asyncio.create_task(redis_service.listen())
        _listener_task.add_done_callback(log_listener_exit)


@app.on_event("shutdown")
async def on_shutdown():
    if _listener_task is not None:
        _listener_task.cancel()
    if state.redis_service is not None:
        await state.redis_service.close()
        state.redis_service = None
    await state.message_router.store.close()
    logger.info("Application stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chatrooms.main:app", host="0.0.0.0", port=8000)
