"""
Redis Pub/Sub relay for real-time trip events.
Publishes hub messages to a Redis channel and dispatches everything received
on that channel back into the local hub, so all API processes stay in sync.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from tripcollab.core.config import settings
from tripcollab.services.hub import EventHub, hub as default_hub

logger = logging.getLogger(__name__)


class RedisPubSubService:
    """Redis Pub/Sub relay for the event hub."""

    def __init__(self, event_hub: EventHub = default_hub, channel: str | None = None):
        self.hub = event_hub
        self.channel = channel or settings.REDIS_EVENTS_CHANNEL
        self.redis: Optional[aioredis.Redis] = None
        self.pubsub: Optional[PubSub] = None
        self._listener_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return (
            self.redis is not None
            and self._listener_task is not None
            and not self._listener_task.done()
        )

    async def connect(self, url: str | None = None):
        """Connect to Redis, subscribe to the events channel and attach to the hub."""
        try:
            self.redis = aioredis.from_url(
                url or settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )
            self.pubsub = self.redis.pubsub()

            await self.pubsub.subscribe(self.channel)

            logger.info(f"Redis Pub/Sub connected and subscribed to '{self.channel}' channel")

            self._listener_task = asyncio.create_task(self._listen())
            self.hub.attach_relay(self)

        except Exception as e:
            logger.error(f"Failed to connect to Redis Pub/Sub: {e}")
            self.redis = None
            self.pubsub = None
            raise

    async def disconnect(self):
        """Detach from the hub and close the Redis connection."""
        self.hub.detach_relay()

        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self.pubsub:
            await self.pubsub.unsubscribe(self.channel)
            await self.pubsub.aclose()
            self.pubsub = None

        if self.redis:
            await self.redis.aclose()
            self.redis = None

        logger.info("Redis Pub/Sub disconnected")

    async def _listen(self):
        """Listen to Redis messages and dispatch them to local subscribers."""
        logger.info("Starting Redis Pub/Sub listener...")

        try:
            async for message in self.pubsub.listen():
                if message["type"] == "message":
                    try:
                        data = json.loads(message["data"])
                        await self.hub.dispatch(data["topic"], data["message"])
                    except Exception as e:
                        logger.error(f"Error processing Redis message: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.info("Redis Pub/Sub listener cancelled")
        except Exception as e:
            logger.error(f"Redis Pub/Sub listener error: {e}", exc_info=True)

    async def publish(self, topic: str, message: Any):
        """Publish a hub message to the Redis channel. Errors propagate to the hub."""
        if not self.redis:
            raise ConnectionError("Redis not connected")

        await self.redis.publish(self.channel, json.dumps({"topic": topic, "message": message}))
        logger.debug(f"Published {topic} to Redis")


# Global instance
redis_pubsub = RedisPubSubService()
