"""
Open-match notifications.

The match store's change feed can deliver the same logical "new open match"
more than once (insert and update events, redeliveries, reordering). The
filter here surfaces each open match at most once per subscriber session.
"""

import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Deque, Iterable, List, Optional

from tennis_league.database.models import MatchStatus
from tennis_league.services import directory_service
from tennis_league.services.match_events import MatchChangedEvent, MatchEventFeed
from tennis_league.utils.constants import DEDUP_FILTER_MAX_ENTRIES, RECENT_NOTIFICATIONS_LIMIT
from tennis_league.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

NotificationSink = Callable[["OpenMatchNotification"], Awaitable[None]]
MessageFormatter = Callable[[MatchChangedEvent], str]


@dataclass(frozen=True)
class OpenMatchNotification:
    """User-facing "new open match" notification."""

    match_id: str
    text: str
    created_at: datetime = field(default_factory=utcnow)


def format_open_match_message(
    tournament_name: str,
    division_name: str,
    creator_name: str,
    date_text: str,
    time_text: Optional[str] = None,
    place: Optional[str] = None,
) -> str:
    """Shareable text announcing an open match."""
    return (
        f"🎾 *{tournament_name} – {division_name}*\n"
        f"{creator_name or 'Someone'} is looking for an opponent.\n"
        f"📅 {date_text}\n"
        f"🕒 {time_text or ''}\n"
        f"📍 {place or ''}"
    )


def default_formatter(event: MatchChangedEvent) -> str:
    match = event.match
    if match is None:
        return f"New open match {event.match_id}"
    return format_open_match_message(
        tournament_name=match.tournament_id,
        division_name=match.division_id,
        creator_name=match.created_by,
        date_text=match.date.strftime("%A %d %B"),
        time_text=match.time,
        place=match.venue_detail or match.area_id,
    )


class OpenMatchNotificationFilter:
    """
    At-most-once "open match" notifications per match id.

    Entries are ``match_id -> closed``. A match that leaves pending stays as a
    closed tombstone so a late or reordered pending event is still dropped.
    When over max_entries, closed entries are evicted oldest first. Open entries
    are never evicted, so the set may grow past max_entries while every match
    in it is still pending.
    """

    def __init__(self, max_entries: int = DEDUP_FILTER_MAX_ENTRIES, formatter: MessageFormatter = default_formatter):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.formatter = formatter
        self._seen: "OrderedDict[str, bool]" = OrderedDict()

    def __contains__(self, match_id: str) -> bool:
        return match_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def _evict(self) -> None:
        while len(self._seen) > self.max_entries:
            victim = next((mid for mid, closed in self._seen.items() if closed), None)
            if victim is None:
                return
            del self._seen[victim]

    def accept(self, event: MatchChangedEvent) -> Optional[OpenMatchNotification]:
        """
        Feed one change event.

        Returns:
            A notification the first time a pending match is seen, else None
        """
        if event.status == MatchStatus.PENDING:
            if event.match_id in self._seen:
                logger.debug(f"Dropping duplicate open-match event for {event.match_id}")
                return None
            self._seen[event.match_id] = False
            self._evict()
            return OpenMatchNotification(match_id=event.match_id, text=self.formatter(event))

        # Left pending (claimed, played or deleted): remember as closed
        self._seen[event.match_id] = True
        self._seen.move_to_end(event.match_id)
        self._evict()
        return None

    def prime(self, events: Iterable[MatchChangedEvent]) -> List[OpenMatchNotification]:
        """Seed with the matches already open when the session starts."""
        notifications = []
        for event in events:
            notification = self.accept(event)
            if notification is not None:
                notifications.append(notification)
        return notifications


class OpenMatchNotifier:
    """
    Connects a change feed to a per-session dedup filter.

    Keeps the most recent notifications for display and forwards each new one
    to an optional transport sink.
    """

    def __init__(
        self,
        feed: MatchEventFeed,
        tournament_id: str,
        division_id: str,
        sink: Optional[NotificationSink] = None,
        dedup: Optional[OpenMatchNotificationFilter] = None,
        recent_limit: int = RECENT_NOTIFICATIONS_LIMIT,
    ):
        self.feed = feed
        self.tournament_id = tournament_id
        self.division_id = division_id
        self.sink = sink
        self.dedup = dedup or OpenMatchNotificationFilter()
        self.recent: Deque[OpenMatchNotification] = deque(maxlen=recent_limit)
        self._token: Optional[int] = None

    async def start(self, open_matches: Iterable = ()) -> List[OpenMatchNotification]:
        """
        Subscribe to the feed and surface the matches that are already open.

        Args:
            open_matches: Pending match views currently in the division
        """
        seeded = []
        for match in open_matches:
            event = MatchChangedEvent(
                kind="snapshot",
                match_id=match.id,
                status=MatchStatus(match.status),
                tournament_id=match.tournament_id,
                division_id=match.division_id,
                match=match,
            )
            notification = await self.handle(event)
            if notification is not None:
                seeded.append(notification)
        self._token = await self.feed.subscribe(self.handle)
        return seeded

    async def stop(self) -> None:
        if self._token is not None:
            await self.feed.unsubscribe(self._token)
            self._token = None

    async def handle(self, event: MatchChangedEvent) -> Optional[OpenMatchNotification]:
        if event.tournament_id != self.tournament_id or event.division_id != self.division_id:
            return None
        notification = self.dedup.accept(event)
        if notification is None:
            return None
        self.recent.appendleft(notification)
        if self.sink is not None:
            try:
                await self.sink(notification)
            except Exception as e:
                logger.warning(f"Failed to deliver open-match notification for {notification.match_id}: {e}")
        return notification


async def build_formatter(session, tournament_id: str, division_id: str) -> MessageFormatter:
    """
    Formatter that renders real tournament, division, creator and area names.

    Names are loaded once; the returned callable does no I/O.
    """
    tournament = await directory_service.get_tournament(session, tournament_id)
    division = await directory_service.get_division(session, division_id)
    roster = await directory_service.get_roster(session, tournament_id, division_id)
    names = {p.id: directory_service.display_name(p) for p in roster}
    area_names = await directory_service.get_area_names(session)

    def formatter(event: MatchChangedEvent) -> str:
        match = event.match
        if match is None:
            return default_formatter(event)
        return format_open_match_message(
            tournament_name=tournament.name if tournament else tournament_id,
            division_name=division.name if division else division_id,
            creator_name=names.get(match.created_by, ""),
            date_text=match.date.strftime("%A %d %B"),
            time_text=match.time,
            place=match.venue_detail or area_names.get(match.area_id),
        )

    return formatter
