"""
Presence and typing indicators for trip collaborators.
Presence is ephemeral: it lives in the presence store only, never in the trip
document, and every failure here is logged and swallowed so it can never
block a document write.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from uuid import UUID

from tripcollab.core.clock import utcnow
from tripcollab.core.config import settings
from tripcollab.schemas import PresenceData, PresenceUpdate
from tripcollab.services.hub import EventHub, deliver, hub as default_hub, topic
from tripcollab.services.presence_store import PresenceStore, build_presence_store

logger = logging.getLogger(__name__)

PresenceKey = Tuple[str, str]


class PresenceBroadcaster:
    """Who is on a trip right now and who is typing."""

    def __init__(
        self,
        store: Optional[PresenceStore] = None,
        event_hub: EventHub = default_hub,
        typing_timeout: float = settings.TYPING_TIMEOUT_SECONDS,
        stale_after: float = settings.PRESENCE_STALE_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store if store is not None else build_presence_store()
        self.hub = event_hub
        self.typing_timeout = typing_timeout
        self.stale_after = stale_after
        self.clock = clock
        # {connection_id: {(trip_id, user_id)}}
        self._connections: Dict[str, Set[PresenceKey]] = {}
        # {(trip_id, user_id): pending auto-clear}
        self._typing_clears: Dict[PresenceKey, asyncio.Task] = {}

    async def update_presence(
        self,
        trip_id: UUID | str,
        user_id: str,
        data: PresenceUpdate | dict[str, Any] | None = None,
        connection_id: str | None = None,
    ) -> Optional[PresenceData]:
        """
        Merge ``data`` over the user's previous record and republish the trip's list.

        Args:
            trip_id: Trip the user is viewing
            user_id: User the record belongs to
            data: Fields to change; unset fields keep their previous value
            connection_id: Live connection owning the record. The first update
                from a connection registers it for ``connection_closed``.

        Returns:
            PresenceData | None: The stored record, None if the write failed
        """
        trip_key = str(trip_id)
        try:
            if data is None:
                data = PresenceUpdate()
            elif not isinstance(data, PresenceUpdate):
                data = PresenceUpdate.model_validate(data)

            previous = await self.store.get_presence(trip_key, user_id)
            changes = data.model_dump(exclude_unset=True, exclude_none=True)

            merged = previous.model_dump() if previous else {}
            if previous and previous.status == "offline":
                merged["status"] = "online"
            merged.update(changes)
            merged["user_id"] = user_id
            merged["last_seen"] = self.clock()

            record = PresenceData.model_validate(merged)
            await self.store.set_presence(trip_key, record)

            if connection_id is not None:
                registered = self._connections.setdefault(connection_id, set())
                if (trip_key, user_id) not in registered:
                    await self.store.add_connection(trip_key, user_id, connection_id)
                    registered.add((trip_key, user_id))

            await self._publish_presence(trip_key)
            return record
        except Exception as e:
            logger.error(f"Failed to update presence for {user_id} on trip {trip_key}: {e}", exc_info=True)
            return None

    async def get_presence(self, trip_id: UUID | str) -> List[PresenceData]:
        """Current records; ones without a recent heartbeat are reported offline."""
        trip_key = str(trip_id)
        try:
            records = await self.store.list_presence(trip_key)
        except Exception as e:
            logger.error(f"Failed to read presence for trip {trip_key}: {e}", exc_info=True)
            return []

        cutoff = self.clock() - timedelta(seconds=self.stale_after)
        return [
            record.model_copy(update={"status": "offline", "is_typing": False})
            if record.status != "offline" and record.last_seen < cutoff
            else record
            for record in records
        ]

    async def subscribe_to_presence(
        self,
        trip_id: UUID | str,
        callback: Callable[[List[PresenceData]], object],
    ) -> Callable[[], None]:
        """Call ``callback`` with the full list now and whenever any record changes."""

        async def on_message(message) -> None:
            await deliver(callback, [PresenceData.model_validate(item) for item in message])

        unsubscribe = self.hub.subscribe(topic("presence", trip_id), on_message)
        try:
            await deliver(callback, await self.get_presence(trip_id))
        except Exception as e:
            logger.error(f"Presence subscriber failed on trip {trip_id}: {e}", exc_info=True)
        return unsubscribe

    async def set_typing(self, trip_id: UUID | str, user_id: str, is_typing: bool) -> None:
        """Mark or clear a typing indicator. A mark clears itself after the typing timeout."""
        trip_key = str(trip_id)
        key = (trip_key, user_id)
        self._cancel_typing_clear(key)
        try:
            if is_typing:
                await self.store.set_typing(trip_key, user_id, self.clock())
                self._typing_clears[key] = asyncio.create_task(self._expire_typing(key))
            else:
                await self.store.clear_typing(trip_key, user_id)
            await self._publish_typing(trip_key)
        except Exception as e:
            logger.error(f"Failed to set typing for {user_id} on trip {trip_key}: {e}", exc_info=True)

    async def get_typing(self, trip_id: UUID | str) -> List[str]:
        """User ids with a typing marker younger than the timeout, oldest first."""
        trip_key = str(trip_id)
        try:
            markers = await self.store.list_typing(trip_key)
        except Exception as e:
            logger.error(f"Failed to read typing markers for trip {trip_key}: {e}", exc_info=True)
            return []

        cutoff = self.clock() - timedelta(seconds=self.typing_timeout)
        active = [(at, user_id) for user_id, at in markers.items() if at > cutoff]
        return [user_id for _, user_id in sorted(active)]

    async def subscribe_to_typing(
        self,
        trip_id: UUID | str,
        callback: Callable[[List[str]], object],
        current_user_id: str | None = None,
    ) -> Callable[[], None]:
        """Call ``callback`` with the typing user ids, minus ``current_user_id``."""

        def others(user_ids: List[str]) -> List[str]:
            return [user_id for user_id in user_ids if user_id != current_user_id]

        async def on_message(message) -> None:
            await deliver(callback, others(message))

        unsubscribe = self.hub.subscribe(topic("typing", trip_id), on_message)
        try:
            await deliver(callback, others(await self.get_typing(trip_id)))
        except Exception as e:
            logger.error(f"Typing subscriber failed on trip {trip_id}: {e}", exc_info=True)
        return unsubscribe

    async def leave(self, trip_id: UUID | str, user_id: str) -> None:
        """Flip the user to offline and drop their typing marker."""
        trip_key = str(trip_id)
        self._cancel_typing_clear((trip_key, user_id))
        try:
            await self.store.clear_typing(trip_key, user_id)
            previous = await self.store.get_presence(trip_key, user_id)
            if previous is not None:
                record = previous.model_copy(
                    update={"status": "offline", "is_typing": False, "last_seen": self.clock()}
                )
                await self.store.set_presence(trip_key, record)
            await self._publish_presence(trip_key)
            await self._publish_typing(trip_key)
        except Exception as e:
            logger.error(f"Failed to mark {user_id} offline on trip {trip_key}: {e}", exc_info=True)

    async def connection_closed(self, connection_id: str) -> None:
        """Disconnect hook: everything registered by the connection goes offline.

        A user still holding another live connection to the same trip stays
        online. Connections are counted in the presence store, so with the Redis
        store this holds across API processes.
        """
        keys = self._connections.pop(connection_id, set())
        for trip_key, user_id in keys:
            try:
                remaining = await self.store.remove_connection(trip_key, user_id, connection_id)
            except Exception as e:
                logger.error(f"Failed to release connection {connection_id} for {user_id}: {e}", exc_info=True)
                remaining = 0
            if remaining:
                continue
            await self.leave(trip_key, user_id)
        if keys:
            logger.info(f"Connection {connection_id} closed, {len(keys)} presence record(s) released")

    async def shutdown(self) -> None:
        tasks = list(self._typing_clears.values())
        self._typing_clears.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _expire_typing(self, key: PresenceKey) -> None:
        trip_key, user_id = key
        await asyncio.sleep(self.typing_timeout)
        if self._typing_clears.get(key) is asyncio.current_task():
            del self._typing_clears[key]
        try:
            await self.store.clear_typing(trip_key, user_id)
            await self._publish_typing(trip_key)
        except Exception as e:
            logger.error(f"Failed to clear typing for {user_id} on trip {trip_key}: {e}", exc_info=True)

    def _cancel_typing_clear(self, key: PresenceKey) -> None:
        task = self._typing_clears.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    async def _publish_presence(self, trip_key: str) -> None:
        records = await self.get_presence(trip_key)
        await self.hub.publish(topic("presence", trip_key), [record.model_dump(mode="json") for record in records])

    async def _publish_typing(self, trip_key: str) -> None:
        await self.hub.publish(topic("typing", trip_key), await self.get_typing(trip_key))


# Global instance
presence_broadcaster = PresenceBroadcaster()
