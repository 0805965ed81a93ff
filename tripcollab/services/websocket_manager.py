"""
WebSocket connection manager for real-time trip collaboration.
Tracks sockets per trip and forwards hub messages for that trip to them.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Set
from uuid import UUID

from fastapi import WebSocket

from tripcollab.services.hub import TOPIC_KINDS, EventHub, hub as default_hub, topic

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections grouped by trip."""

    def __init__(self, event_hub: EventHub = default_hub):
        self.hub = event_hub
        # {trip_id: {websocket1, websocket2, ...}}
        self.active_connections: Dict[UUID, Set[WebSocket]] = {}
        self._unsubscribers: Dict[UUID, List[Callable[[], None]]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, trip_id: UUID):
        """Accept WebSocket connection and start forwarding the trip's topics."""
        await websocket.accept()

        async with self._lock:
            if trip_id not in self.active_connections:
                self.active_connections[trip_id] = set()
                self._unsubscribers[trip_id] = [
                    self.hub.subscribe(topic(kind, trip_id), self._forwarder(trip_id, kind))
                    for kind in TOPIC_KINDS
                ]
            self.active_connections[trip_id].add(websocket)

        logger.info(f"WebSocket connected: trip_id={trip_id}, total_connections={len(self.active_connections[trip_id])}")

    async def disconnect(self, websocket: WebSocket, trip_id: UUID):
        """Remove WebSocket connection; stop forwarding once the trip has none left."""
        async with self._lock:
            if trip_id in self.active_connections:
                self.active_connections[trip_id].discard(websocket)
                if not self.active_connections[trip_id]:
                    self._release(trip_id)

        logger.info(f"WebSocket disconnected: trip_id={trip_id}")

    def _release(self, trip_id: UUID) -> None:
        del self.active_connections[trip_id]
        for unsubscribe in self._unsubscribers.pop(trip_id, []):
            unsubscribe()

    def _forwarder(self, trip_id: UUID, kind: str):
        async def forward(message) -> None:
            await self.send_to_trip({"type": kind, "data": message}, trip_id)

        return forward

    async def send_to_trip(self, message: dict, trip_id: UUID):
        """Send message to every WebSocket watching a trip."""
        if trip_id not in self.active_connections:
            logger.debug(f"No active connections for trip {trip_id}")
            return

        disconnected = []
        connections = list(self.active_connections[trip_id])

        for websocket in connections:
            try:
                await websocket.send_json(message)
                logger.debug(f"Message sent to trip {trip_id}: {message.get('type')}")
            except Exception as e:
                logger.error(f"Error sending message to trip {trip_id}: {e}")
                disconnected.append(websocket)

        # Clean up disconnected sockets
        if disconnected:
            async with self._lock:
                if trip_id in self.active_connections:
                    for ws in disconnected:
                        self.active_connections[trip_id].discard(ws)
                    if not self.active_connections[trip_id]:
                        self._release(trip_id)

    def get_active_trips(self) -> Set[UUID]:
        """Get set of trip IDs with active WebSocket connections."""
        return set(self.active_connections.keys())

    def get_connection_count(self, trip_id: UUID) -> int:
        """Get number of active connections for a trip."""
        return len(self.active_connections.get(trip_id, set()))


# Global instance
manager = ConnectionManager()
