"""
Standings engine.

Builds the ranked roster of a division/tournament from the registered players,
the aggregated stats and the match history, using the tie-break comparator.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.models.schemas import (
    DivisionSummary,
    OpponentView,
    PendingMatch,
    PlayedMatch,
    PlayerOverview,
    RankedStandingsRow,
    ScheduledMatch,
    StandingsRow,
)
from tennis_league.services import directory_service, match_store, stats_service
from tennis_league.services.directory_service import RegistryCache
from tennis_league.services.home_away_service import assign_home
from tennis_league.services.tiebreak_service import rank_rows

logger = logging.getLogger(__name__)


def build_ranked_rows(
    rows: List[StandingsRow],
    matches: List,
    tournament_id: str,
    division_id: str,
    display_names: Optional[Dict[str, str]] = None,
) -> List[RankedStandingsRow]:
    """
    Rank standings rows and attach scheduling progress.

    Each player is expected to meet every other roster player once, so
    "not scheduled" is (roster size - 1) - played - scheduled.
    """
    display_names = display_names or {}
    scheduled_counts: Dict[str, int] = {}
    for match in matches:
        if isinstance(match, ScheduledMatch):
            for player_id in (match.home_player_id, match.away_player_id):
                scheduled_counts[player_id] = scheduled_counts.get(player_id, 0) + 1

    possible = max(len(rows) - 1, 0)
    ranked = []
    for position, row in enumerate(rank_rows(rows, division_id, tournament_id, matches), start=1):
        scheduled = scheduled_counts.get(row.player_id, 0)
        ranked.append(
            RankedStandingsRow(
                **row.model_dump(),
                rank=position,
                display_name=display_names.get(row.player_id, row.name),
                matches_scheduled=scheduled,
                matches_not_scheduled=max(0, possible - row.matches_played - scheduled),
            )
        )
    return ranked


async def get_standings(
    session: AsyncSession,
    tournament_id: str,
    division_id: str,
    cache: Optional[RegistryCache] = None,
) -> List[RankedStandingsRow]:
    """
    Ranked roster for a division/tournament.

    Args:
        session: Database session
        tournament_id: Tournament ID
        division_id: Division ID
        cache: Optional registry cache for the roster lookup

    Returns:
        Rows best first, one per registered (non-admin) player
    """
    roster = await directory_service.get_roster(session, tournament_id, division_id, cache=cache)
    matches = await match_store.list_matches(session, tournament_id, division_id)
    rows = stats_service.aggregate_standings(
        {p.id: p.name for p in roster}, matches, tournament_id, division_id
    )
    names = {p.id: directory_service.display_name(p) for p in roster}
    ranked = build_ranked_rows(rows, matches, tournament_id, division_id, names)
    logger.debug(f"Standings for {tournament_id}/{division_id}: {len(ranked)} players, {len(matches)} matches")
    return ranked


async def get_division_summary(
    session: AsyncSession,
    tournament_id: str,
    division_id: str,
    cache: Optional[RegistryCache] = None,
) -> DivisionSummary:
    """Leader, top drinker and match counts for a division/tournament."""
    standings = await get_standings(session, tournament_id, division_id, cache=cache)
    matches = await match_store.list_matches(session, tournament_id, division_id)

    top_drinker = None
    for row in standings:
        if top_drinker is None or row.drinks > top_drinker.drinks:
            top_drinker = row

    return DivisionSummary(
        tournament_id=tournament_id,
        division_id=division_id,
        players=len(standings),
        matches_played=sum(1 for m in matches if isinstance(m, PlayedMatch)),
        matches_scheduled=sum(1 for m in matches if isinstance(m, ScheduledMatch)),
        matches_pending=sum(1 for m in matches if isinstance(m, PendingMatch)),
        total_drinks=sum(row.drinks for row in standings),
        leader=standings[0] if standings else None,
        top_drinker=top_drinker if top_drinker is not None and top_drinker.drinks > 0 else None,
    )


async def get_player_overview(
    session: AsyncSession,
    tournament_id: str,
    division_id: str,
    player_id: str,
    cache: Optional[RegistryCache] = None,
) -> PlayerOverview:
    """
    A player's played and scheduled matches, plus the roster opponents they have
    neither played nor scheduled yet (with the side they would play on).
    """
    standings = await get_standings(session, tournament_id, division_id, cache=cache)
    roster = await directory_service.get_roster(session, tournament_id, division_id, cache=cache)
    matches = await match_store.list_matches(session, tournament_id, division_id)

    played = [m for m in matches if isinstance(m, PlayedMatch) and m.involves(player_id)]
    scheduled = [m for m in matches if isinstance(m, ScheduledMatch) and m.involves(player_id)]

    met = set()
    for match in played + scheduled:
        met.update({match.home_player_id, match.away_player_id})

    upcoming = [
        OpponentView(
            player_id=opponent.id,
            display_name=directory_service.display_name(opponent),
            home_player_id=assign_home(division_id, tournament_id, player_id, opponent.id),
        )
        for opponent in roster
        if opponent.id != player_id and opponent.id not in met
    ]

    return PlayerOverview(
        player_id=player_id,
        standing=next((row for row in standings if row.player_id == player_id), None),
        played=played,
        scheduled=scheduled,
        upcoming=upcoming,
    )
