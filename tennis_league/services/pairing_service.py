"""
Pairing guard: detects an existing match between the same two players.

Creation, claiming and result recording all go through here, parameterized by
the set of statuses that count as a conflict.
"""

from typing import Iterable, Optional
from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.database.models import Match, MatchStatus

# Statuses that block a second match for the same pair
ACTIVE_PAIRING_STATUSES = frozenset({MatchStatus.SCHEDULED, MatchStatus.PLAYED})


def _status_values(statuses: Iterable) -> set:
    return {MatchStatus(s).value for s in statuses}


def is_same_pairing(home_player_id: Optional[str], away_player_id: Optional[str], player_a: str, player_b: str) -> bool:
    """True if the match sides are exactly {player_a, player_b}, in either order."""
    if home_player_id is None or away_player_id is None:
        return False
    return {home_player_id, away_player_id} == {player_a, player_b}


def has_conflict(
    matches: Iterable,
    tournament_id: str,
    division_id: str,
    player_a: str,
    player_b: str,
    statuses: Iterable,
    exclude_match_id: Optional[str] = None,
) -> bool:
    """
    Check already-fetched matches for a conflicting pairing.

    Args:
        matches: Match views or ORM rows with tournament_id, division_id, status,
            home_player_id and away_player_id
        tournament_id: Scope tournament
        division_id: Scope division
        player_a: One player of the pair
        player_b: The other player
        statuses: Statuses that count as a conflict, e.g. {scheduled, played}
        exclude_match_id: Match to ignore (the one being transitioned)

    Returns:
        True if any match between this unordered pair has one of the statuses
    """
    wanted = _status_values(statuses)
    for match in matches:
        if exclude_match_id is not None and match.id == exclude_match_id:
            continue
        if match.tournament_id != tournament_id or match.division_id != division_id:
            continue
        if MatchStatus(match.status).value not in wanted:
            continue
        if is_same_pairing(match.home_player_id, match.away_player_id, player_a, player_b):
            return True
    return False


async def pairing_conflict_exists(
    session: AsyncSession,
    tournament_id: str,
    division_id: str,
    player_a: str,
    player_b: str,
    statuses: Iterable,
    exclude_match_id: Optional[str] = None,
) -> bool:
    """
    Same predicate as has_conflict, evaluated against the match store.

    Returns:
        True if a conflicting match exists
    """
    conditions = [
        Match.tournament_id == tournament_id,
        Match.division_id == division_id,
        Match.status.in_([MatchStatus(s) for s in statuses]),
        or_(
            and_(Match.home_player_id == player_a, Match.away_player_id == player_b),
            and_(Match.home_player_id == player_b, Match.away_player_id == player_a),
        ),
    ]
    if exclude_match_id is not None:
        conditions.append(Match.id != exclude_match_id)

    result = await session.execute(select(Match.id).where(and_(*conditions)).limit(1))
    return result.scalar_one_or_none() is not None
