"""
Change feed for the match store.

Delivers "match changed" events (insert / update / delete) to subscribers.
Delivery is at-least-once from the consumer's point of view: one logical
change (e.g. a new open match) may arrive as more than one event, so
consumers must be idempotent.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from tennis_league.database.models import MatchStatus

logger = logging.getLogger(__name__)

EVENT_INSERT = "insert"
EVENT_UPDATE = "update"
EVENT_DELETE = "delete"

Subscriber = Callable[["MatchChangedEvent"], Awaitable[None]]


@dataclass(frozen=True)
class MatchChangedEvent:
    """A row in the match store changed. ``match`` is the row's current view (None on delete)."""

    kind: str
    match_id: str
    status: Optional[MatchStatus]
    tournament_id: Optional[str] = None
    division_id: Optional[str] = None
    match: Optional[object] = None


class MatchEventFeed:
    """Fan-out of match change events to async subscribers."""

    def __init__(self):
        self._subscribers: Dict[int, Subscriber] = {}
        self._next_token = 0
        # Guards the subscriber registry only
        self._lock = asyncio.Lock()

    async def subscribe(self, callback: Subscriber) -> int:
        """
        Register a subscriber.

        Returns:
            Token to pass to unsubscribe
        """
        async with self._lock:
            self._next_token += 1
            token = self._next_token
            self._subscribers[token] = callback
            logger.debug(f"Match feed subscriber {token} registered ({len(self._subscribers)} total)")
            return token

    async def unsubscribe(self, token: int) -> None:
        async with self._lock:
            self._subscribers.pop(token, None)

    async def subscriber_count(self) -> int:
        async with self._lock:
            return len(self._subscribers)

    async def publish(self, event: MatchChangedEvent) -> int:
        """
        Deliver an event to every subscriber.

        A failing subscriber is logged and does not stop delivery to the others;
        the store write that produced the event has already been committed.

        Returns:
            Number of subscribers that received the event
        """
        async with self._lock:
            subscribers = list(self._subscribers.items())

        delivered = 0
        for token, callback in subscribers:
            try:
                await callback(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Match feed subscriber {token} failed on {event.kind} {event.match_id}: {e}")
        return delivered
