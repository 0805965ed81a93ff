"""
In-process topic hub for real-time trip updates.
Services publish here; subscribers are WebSocket fan-out, tests and any
in-process listener. When a Redis relay is attached, publications travel
through Redis so every API process sees them.
"""

from __future__ import annotations

import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union
from uuid import UUID

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Union[None, Awaitable[None]]]

TOPIC_KINDS = ("trip", "collaborators", "presence", "typing", "tasks", "events")


def topic(kind: str, trip_id: UUID | str) -> str:
    return f"{kind}:{trip_id}"


async def deliver(callback: Callback, message: Any) -> None:
    """Call a subscriber that may be a plain function or a coroutine function."""
    result = callback(message)
    if inspect.isawaitable(result):
        await result


class Relay(Protocol):
    is_connected: bool

    async def publish(self, topic: str, message: Any) -> None: ...


class EventHub:
    """Topic based publish/subscribe with per-subscriber error isolation."""

    def __init__(self):
        # {topic: {subscription_id: callback}}
        self._subscribers: Dict[str, Dict[int, Callback]] = {}
        self._ids = itertools.count(1)
        self._relay: Optional[Relay] = None

    def attach_relay(self, relay: Relay) -> None:
        self._relay = relay

    def detach_relay(self) -> None:
        self._relay = None

    def subscribe(self, topic: str, callback: Callback) -> Callable[[], None]:
        """Register ``callback`` for ``topic``; returns an idempotent unsubscribe."""
        subscription_id = next(self._ids)
        self._subscribers.setdefault(topic, {})[subscription_id] = callback
        logger.debug(f"Subscribed {subscription_id} to {topic}")

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(topic)
            if not callbacks:
                return
            callbacks.pop(subscription_id, None)
            if not callbacks:
                del self._subscribers[topic]

        return unsubscribe

    async def publish(self, topic: str, message: Any) -> None:
        """Publish a JSON-serialisable message.

        Goes through the relay when one is connected; falls back to local
        dispatch when the relay is missing or fails.
        """
        relay = self._relay
        if relay is not None and relay.is_connected:
            try:
                await relay.publish(topic, message)
                return
            except Exception as e:
                logger.error(f"Relay publish failed for {topic}, dispatching locally: {e}")

        await self.dispatch(topic, message)

    async def dispatch(self, topic: str, message: Any) -> None:
        """Deliver to local subscribers in subscription order."""
        callbacks = list(self._subscribers.get(topic, {}).values())
        for callback in callbacks:
            try:
                await deliver(callback, message)
            except Exception as e:
                logger.error(f"Subscriber error on {topic}: {e}", exc_info=True)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, {}))


# Global instance
hub = EventHub()
