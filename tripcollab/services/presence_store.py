"""Low-durability storage for presence records and typing markers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Set, Tuple

import redis.asyncio as aioredis

from tripcollab.core.config import settings
from tripcollab.schemas import PresenceData

logger = logging.getLogger(__name__)


class PresenceStore(Protocol):
    async def set_presence(self, trip_id: str, record: PresenceData) -> None: ...

    async def get_presence(self, trip_id: str, user_id: str) -> Optional[PresenceData]: ...

    async def list_presence(self, trip_id: str) -> List[PresenceData]: ...

    async def set_typing(self, trip_id: str, user_id: str, at: datetime) -> None: ...

    async def clear_typing(self, trip_id: str, user_id: str) -> None: ...

    async def list_typing(self, trip_id: str) -> Dict[str, datetime]: ...

    async def add_connection(self, trip_id: str, user_id: str, connection_id: str) -> None: ...

    async def remove_connection(self, trip_id: str, user_id: str, connection_id: str) -> int: ...


class InMemoryPresenceStore:
    """Single-process presence store."""

    def __init__(self):
        # {trip_id: {user_id: PresenceData}}
        self._presence: Dict[str, Dict[str, PresenceData]] = {}
        # {trip_id: {user_id: started typing at}}
        self._typing: Dict[str, Dict[str, datetime]] = {}
        # {(trip_id, user_id): {connection_id}}
        self._connections: Dict[Tuple[str, str], Set[str]] = {}

    async def set_presence(self, trip_id: str, record: PresenceData) -> None:
        self._presence.setdefault(trip_id, {})[record.user_id] = record

    async def get_presence(self, trip_id: str, user_id: str) -> Optional[PresenceData]:
        return self._presence.get(trip_id, {}).get(user_id)

    async def list_presence(self, trip_id: str) -> List[PresenceData]:
        return list(self._presence.get(trip_id, {}).values())

    async def set_typing(self, trip_id: str, user_id: str, at: datetime) -> None:
        self._typing.setdefault(trip_id, {})[user_id] = at

    async def clear_typing(self, trip_id: str, user_id: str) -> None:
        markers = self._typing.get(trip_id)
        if markers is None:
            return
        markers.pop(user_id, None)
        if not markers:
            del self._typing[trip_id]

    async def list_typing(self, trip_id: str) -> Dict[str, datetime]:
        return dict(self._typing.get(trip_id, {}))

    async def add_connection(self, trip_id: str, user_id: str, connection_id: str) -> None:
        self._connections.setdefault((trip_id, user_id), set()).add(connection_id)

    async def remove_connection(self, trip_id: str, user_id: str, connection_id: str) -> int:
        """Forget one connection and return how many the user still holds on the trip."""
        connections = self._connections.get((trip_id, user_id), set())
        connections.discard(connection_id)
        if not connections:
            self._connections.pop((trip_id, user_id), None)
        return len(connections)


class RedisPresenceStore:
    """Presence shared by every API process, one Redis hash per trip."""

    def __init__(self, url: str | None = None, ttl_seconds: int = 24 * 60 * 60):
        self.redis = aioredis.from_url(
            url or settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _presence_key(trip_id: str) -> str:
        return f"presence:{trip_id}"

    @staticmethod
    def _typing_key(trip_id: str) -> str:
        return f"typing:{trip_id}"

    @staticmethod
    def _connections_key(trip_id: str, user_id: str) -> str:
        return f"presence_connections:{trip_id}:{user_id}"

    async def set_presence(self, trip_id: str, record: PresenceData) -> None:
        key = self._presence_key(trip_id)
        await self.redis.hset(key, record.user_id, record.model_dump_json())
        await self.redis.expire(key, self.ttl_seconds)

    async def get_presence(self, trip_id: str, user_id: str) -> Optional[PresenceData]:
        raw = await self.redis.hget(self._presence_key(trip_id), user_id)
        return PresenceData.model_validate_json(raw) if raw else None

    async def list_presence(self, trip_id: str) -> List[PresenceData]:
        raw = await self.redis.hgetall(self._presence_key(trip_id))
        return [PresenceData.model_validate_json(value) for value in raw.values()]

    async def set_typing(self, trip_id: str, user_id: str, at: datetime) -> None:
        key = self._typing_key(trip_id)
        await self.redis.hset(key, user_id, at.isoformat())
        await self.redis.expire(key, self.ttl_seconds)

    async def clear_typing(self, trip_id: str, user_id: str) -> None:
        await self.redis.hdel(self._typing_key(trip_id), user_id)

    async def list_typing(self, trip_id: str) -> Dict[str, datetime]:
        raw = await self.redis.hgetall(self._typing_key(trip_id))
        return {user_id: datetime.fromisoformat(value) for user_id, value in raw.items()}

    async def add_connection(self, trip_id: str, user_id: str, connection_id: str) -> None:
        key = self._connections_key(trip_id, user_id)
        await self.redis.sadd(key, connection_id)
        await self.redis.expire(key, self.ttl_seconds)

    async def remove_connection(self, trip_id: str, user_id: str, connection_id: str) -> int:
        """Connections are shared across API processes, so a user stays online
        while any process still holds a socket for them."""
        key = self._connections_key(trip_id, user_id)
        await self.redis.srem(key, connection_id)
        return await self.redis.scard(key)

    async def close(self) -> None:
        await self.redis.aclose()


def build_presence_store() -> PresenceStore:
    if settings.PRESENCE_BACKEND == "redis":
        logger.info(f"Using Redis presence store at {settings.REDIS_URL}")
        return RedisPresenceStore()
    return InMemoryPresenceStore()
