"""Standings, summaries, player overview and home/away route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.api.dependencies import get_registry_cache
from tennis_league.database.db import get_db_session
from tennis_league.models.schemas import (
    DivisionSummary,
    HealthResponse,
    HomeAwayResponse,
    PlayerOverview,
    RankedStandingsRow,
)
from tennis_league.services import standings_service
from tennis_league.services.directory_service import RegistryCache
from tennis_league.services.home_away_service import assign_sides

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", message="Tennis league API is running")


@router.get(
    "/api/tournaments/{tournament_id}/divisions/{division_id}/standings",
    response_model=List[RankedStandingsRow],
)
async def get_standings(
    tournament_id: str,
    division_id: str,
    cache: RegistryCache = Depends(get_registry_cache),
    session: AsyncSession = Depends(get_db_session),
):
    """Ranked roster of a division/tournament, best first."""
    return await standings_service.get_standings(session, tournament_id, division_id, cache=cache)


@router.get(
    "/api/tournaments/{tournament_id}/divisions/{division_id}/summary",
    response_model=DivisionSummary,
)
async def get_division_summary(
    tournament_id: str,
    division_id: str,
    cache: RegistryCache = Depends(get_registry_cache),
    session: AsyncSession = Depends(get_db_session),
):
    return await standings_service.get_division_summary(session, tournament_id, division_id, cache=cache)


@router.get(
    "/api/tournaments/{tournament_id}/divisions/{division_id}/players/{player_id}/overview",
    response_model=PlayerOverview,
)
async def get_player_overview(
    tournament_id: str,
    division_id: str,
    player_id: str,
    cache: RegistryCache = Depends(get_registry_cache),
    session: AsyncSession = Depends(get_db_session),
):
    """Played and scheduled matches of a player, plus the opponents still to arrange."""
    return await standings_service.get_player_overview(
        session, tournament_id, division_id, player_id, cache=cache
    )


@router.get("/api/home-away", response_model=HomeAwayResponse)
async def get_home_away(
    tournament_id: str = Query(...),
    division_id: str = Query(...),
    player_a: str = Query(...),
    player_b: str = Query(...),
):
    """Deterministic home/away sides for a pair; the argument order does not matter."""
    try:
        home, away = assign_sides(division_id, tournament_id, player_a, player_b)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return HomeAwayResponse(home_player_id=home, away_player_id=away)
