"""
Match store: persistence of matches and their sets.

Every write that depends on a previously observed state is a conditional
(compare-and-swap) statement. The expected state is part of the WHERE clause
and the number of affected rows is returned as a WriteOutcome; zero rows
means another actor changed the match first.

Functions here flush but never commit; the caller owns the transaction.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.database.models import Match, MatchSet, MatchStatus
from tennis_league.models.schemas import (
    MatchResultView,
    MatchSetView,
    MatchView,
    PendingMatch,
    PlayedMatch,
    ScheduledMatch,
)

OPEN_STATUSES = (MatchStatus.PENDING, MatchStatus.SCHEDULED)


@dataclass(frozen=True)
class WriteOutcome:
    """Result of a conditional write."""

    rows_affected: int

    @property
    def applied(self) -> bool:
        return self.rows_affected > 0

    @property
    def lost_race(self) -> bool:
        """The asserted prior state no longer held when the write ran."""
        return self.rows_affected == 0


# ============================================================================
# Read side
# ============================================================================

def to_match_view(match: Match) -> MatchView:
    """Convert an ORM row into the closed Pending | Scheduled | Played variant."""
    common = dict(
        id=match.id,
        tournament_id=match.tournament_id,
        division_id=match.division_id,
        home_player_id=match.home_player_id,
        date=match.date,
        time=match.time,
        time_block=match.time_block,
        area_id=match.area_id,
        venue_detail=match.venue_detail,
        created_by=match.created_by,
        created_at=match.created_at,
    )
    status = MatchStatus(match.status)
    if status == MatchStatus.PENDING:
        return PendingMatch(**common)
    if status == MatchStatus.SCHEDULED:
        return ScheduledMatch(away_player_id=match.away_player_id, **common)
    result = MatchResultView(
        sets=[MatchSetView.model_validate(s) for s in match.sets],
        home_sets_won=match.home_sets_won,
        away_sets_won=match.away_sets_won,
        home_games_won=match.home_games_won,
        away_games_won=match.away_games_won,
        home_had_drink=match.home_had_drink,
        away_had_drink=match.away_had_drink,
        home_drinks=match.home_drinks,
        away_drinks=match.away_drinks,
        anecdote=match.anecdote,
    )
    return PlayedMatch(away_player_id=match.away_player_id, result=result, **common)


async def get_match(session: AsyncSession, match_id: str) -> Optional[Match]:
    """Load a match with its sets, refreshing any stale copy in the session."""
    result = await session.execute(
        select(Match)
        .where(Match.id == match_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_match_view(session: AsyncSession, match_id: str) -> Optional[MatchView]:
    match = await get_match(session, match_id)
    return to_match_view(match) if match else None


async def list_matches(
    session: AsyncSession,
    tournament_id: str,
    division_id: str,
    statuses: Optional[Iterable[MatchStatus]] = None,
) -> List[MatchView]:
    """
    All matches of a division/tournament, ordered by date, time and creation.

    Args:
        statuses: Optional status filter
    """
    conditions = [Match.tournament_id == tournament_id, Match.division_id == division_id]
    if statuses is not None:
        conditions.append(Match.status.in_(list(statuses)))
    result = await session.execute(
        select(Match)
        .where(and_(*conditions))
        .order_by(Match.date, Match.time, Match.created_at, Match.id)
        .execution_options(populate_existing=True)
    )
    return [to_match_view(m) for m in result.scalars().all()]


# ============================================================================
# Write side
# ============================================================================

async def insert_match(session: AsyncSession, **fields) -> Match:
    """Insert a new match row and flush it so its id is available."""
    match = Match(**fields)
    session.add(match)
    await session.flush()
    return match


async def insert_sets(session: AsyncSession, match_id: str, sets: Sequence[Tuple[int, int]]) -> None:
    """Insert set rows numbered 1..n in the given order."""
    for number, (home_games, away_games) in enumerate(sets, start=1):
        session.add(
            MatchSet(
                match_id=match_id,
                set_number=number,
                home_games=home_games,
                away_games=away_games,
            )
        )
    await session.flush()


async def delete_sets(session: AsyncSession, match_id: str) -> int:
    """Delete every set of a match. Safe to repeat."""
    result = await session.execute(delete(MatchSet).where(MatchSet.match_id == match_id))
    return result.rowcount


async def replace_sets(session: AsyncSession, match_id: str, sets: Sequence[Tuple[int, int]]) -> None:
    """Replace the whole set list of a match; sets are never patched individually."""
    await delete_sets(session, match_id)
    await insert_sets(session, match_id, sets)


async def _conditional_update(session: AsyncSession, conditions: list, values: Dict) -> WriteOutcome:
    result = await session.execute(
        update(Match)
        .where(and_(*conditions))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return WriteOutcome(rows_affected=result.rowcount)


async def claim_pending(session: AsyncSession, match_id: str, away_player_id: str) -> WriteOutcome:
    """
    Attach an opponent to an open match.

    Applies only if the match is still pending AND has no away player.
    """
    return await _conditional_update(
        session,
        [
            Match.id == match_id,
            Match.status == MatchStatus.PENDING,
            Match.away_player_id.is_(None),
        ],
        {"away_player_id": away_player_id, "status": MatchStatus.SCHEDULED},
    )


async def update_schedule(session: AsyncSession, match_id: str, values: Dict) -> WriteOutcome:
    """Update date/time/place. Applies only while the match is pending or scheduled."""
    return await _conditional_update(
        session,
        [Match.id == match_id, Match.status.in_(OPEN_STATUSES)],
        values,
    )


async def write_result(
    session: AsyncSession,
    match_id: str,
    expected_status: MatchStatus,
    values: Dict,
    expected_away_player_id: Optional[str] = None,
) -> WriteOutcome:
    """
    Write result aggregates and mark the match played.

    Applies only if the match still has ``expected_status``. For a pending match
    the away player must still be empty; otherwise it must still be
    ``expected_away_player_id``.
    """
    conditions = [Match.id == match_id, Match.status == expected_status]
    if expected_status == MatchStatus.PENDING:
        conditions.append(Match.away_player_id.is_(None))
    elif expected_away_player_id is not None:
        conditions.append(Match.away_player_id == expected_away_player_id)
    return await _conditional_update(
        session,
        conditions,
        {**values, "status": MatchStatus.PLAYED},
    )


async def delete_match(
    session: AsyncSession,
    match_id: str,
    expected_statuses: Iterable[MatchStatus],
) -> WriteOutcome:
    """
    Delete a match and its sets, children first.

    The parent delete is conditional on the status set. When it affects zero
    rows the caller must roll back so the already-deleted sets are restored.
    """
    await delete_sets(session, match_id)
    result = await session.execute(
        delete(Match)
        .where(and_(Match.id == match_id, Match.status.in_(list(expected_statuses))))
        .execution_options(synchronize_session=False)
    )
    return WriteOutcome(rows_affected=result.rowcount)
