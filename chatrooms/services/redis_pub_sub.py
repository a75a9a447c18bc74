# chatrooms/services/redis_pub_sub.py
import json
import logging
from typing import Optional
from urllib.parse import quote

import redis.asyncio as redis

from chatrooms.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class AsyncRedisPubSubService:
    """
    Cross-instance fan-out through Redis Pub/Sub.

    Each delivery is published as an envelope on a scoped channel:
        <prefix>:room:<room>    room broadcast
        <prefix>:user:<user_id> direct delivery to a user channel
        <prefix>:all            global broadcast

    Every instance runs listen(), which pattern-subscribes to <prefix>:* and
    hands each envelope to its local ConnectionManager. The publishing
    instance receives its own envelopes too, so local members are reached
    the same way as remote ones.
    """

    def __init__(
        self,
        registry: ConnectionManager,
        host: str = "localhost",
        port: int = 6379,
        access_key: str = "",
        ssl: bool = False,
        prefix: str = "chat",
    ):
        self.registry = registry
        self.host = host
        self.port = port
        self.access_key = access_key
        self.ssl = ssl
        self.prefix = prefix
        self.client = None
        self.pubsub = None

    @property
    def url(self) -> str:
        scheme = "rediss" if self.ssl else "redis"
        auth = f":{quote(self.access_key, safe='')}@" if self.access_key else ""
        return f"{scheme}://{auth}{self.host}:{self.port}"

    async def connect(self):
        """Establish async connection to Redis."""
        self.client = redis.from_url(self.url, decode_responses=True)
        await self.client.ping()
        logger.info(f"✓ Connected to Redis at {self.host}:{self.port}")

    async def publish(self, channel: str, envelope: dict):
        await self.client.publish(channel, json.dumps(envelope))
        logger.info(f"📤 Published {envelope['event']} to Redis channel '{channel}'")

    async def broadcast_to_room(self, room: str, event: str, payload: dict):
        await self.publish(
            f"{self.prefix}:room:{room}",
            {"scope": "room", "target": room, "event": event, "payload": payload},
        )

    async def deliver_to_user(self, user_id: str, event: str, payload: dict, exclude: Optional[str] = None):
        await self.publish(
            f"{self.prefix}:user:{user_id}",
            {"scope": "user", "target": user_id, "event": event, "payload": payload, "exclude": exclude},
        )

    async def broadcast_to_all(self, event: str, payload: dict):
        await self.publish(
            f"{self.prefix}:all",
            {"scope": "all", "target": None, "event": event, "payload": payload},
        )

    async def dispatch(self, raw: str):
        """Deliver one published envelope to this instance's connections."""
        envelope = json.loads(raw)
        scope = envelope.get("scope")
        event = envelope["event"]
        payload = envelope["payload"]

        if scope == "room":
            await self.registry.broadcast_to_room(envelope["target"], event, payload)
        elif scope == "user":
            await self.registry.deliver_to_user(
                envelope["target"], event, payload, exclude=envelope.get("exclude")
            )
        elif scope == "all":
            await self.registry.broadcast_to_all(event, payload)
        else:
            logger.warning("Redis envelope with unknown scope %r - ignoring", scope)

    async def listen(self):
        """Pattern-subscribe to this prefix and forward envelopes to local WebSockets."""
        pattern = f"{self.prefix}:*"
        self.pubsub = self.client.pubsub()
        await self.pubsub.psubscribe(pattern)
        logger.info(f"✓ Subscribed to Redis pattern '{pattern}'")

        async for message in self.pubsub.listen():
            if message["type"] in ("message", "pmessage"):
                try:
                    await self.dispatch(message["data"])
                except Exception as e:
                    logger.error(f"Error processing Redis message: {e}")

    async def close(self):
        """Close connections."""
        if self.pubsub:
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")
