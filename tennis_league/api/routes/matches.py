"""Match lifecycle route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.api.dependencies import get_current_player, get_match_feed
from tennis_league.api.routes import limiter
from tennis_league.database.db import get_db_session
from tennis_league.database.models import MatchStatus, Player
from tennis_league.models.schemas import (
    CreateMatchRequest,
    MatchView,
    RecordResultRequest,
    UpdateScheduleRequest,
)
from tennis_league.services import match_service, match_store
from tennis_league.services.match_events import MatchEventFeed
from tennis_league.services.match_service import (
    MatchAuthorizationError,
    MatchConflictError,
    MatchNotFoundError,
    MatchValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def to_http_exception(error: Exception) -> HTTPException:
    """Map a match service failure to the HTTP status the client sees."""
    if isinstance(error, MatchNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, MatchConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, MatchAuthorizationError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, (MatchValidationError, ValueError)):
        return HTTPException(status_code=400, detail=str(error))
    logger.error(f"Match operation failed: {error}", exc_info=True)
    return HTTPException(status_code=500, detail="Match store unavailable")


@router.post("/api/matches", response_model=MatchView)
async def create_match(
    match_request: CreateMatchRequest,
    current_player: Player = Depends(get_current_player),
    feed: MatchEventFeed = Depends(get_match_feed),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create an open, scheduled or played match.

    Request body:
        {
            "tournament_id": "t1",
            "division_id": "d1",
            "date": "2025-10-25",
            "time": "18:30",             // Optional
            "area_id": "north",          // Optional
            "venue_detail": "Court 3",   // Optional
            "away_player_id": "p2",      // Optional - omit to publish an open match
            "auto_assign_home": false,   // Optional
            "result": {...}              // Optional - records the match as played
        }
    """
    try:
        return await match_service.create_match(session, match_request, current_player, feed=feed)
    except (ValueError, SQLAlchemyError) as e:
        raise to_http_exception(e)


@router.post("/api/matches/{match_id}/claim", response_model=MatchView)
@limiter.limit("20/minute")
async def claim_match(
    request: Request,
    match_id: str,
    current_player: Player = Depends(get_current_player),
    feed: MatchEventFeed = Depends(get_match_feed),
    session: AsyncSession = Depends(get_db_session),
):
    """Join an open match as the away player. 409 if someone else joined first."""
    try:
        return await match_service.claim_match(session, match_id, current_player, feed=feed)
    except (ValueError, SQLAlchemyError) as e:
        raise to_http_exception(e)


@router.put("/api/matches/{match_id}/schedule", response_model=MatchView)
async def update_schedule(
    match_id: str,
    schedule_request: UpdateScheduleRequest,
    current_player: Player = Depends(get_current_player),
    feed: MatchEventFeed = Depends(get_match_feed),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await match_service.update_schedule(session, match_id, schedule_request, current_player, feed=feed)
    except (ValueError, SQLAlchemyError) as e:
        raise to_http_exception(e)


@router.put("/api/matches/{match_id}/result", response_model=MatchView)
async def record_result(
    match_id: str,
    result_request: RecordResultRequest,
    current_player: Player = Depends(get_current_player),
    feed: MatchEventFeed = Depends(get_match_feed),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Record or replace the full result of a match.

    Sets with a blank score are ignored; at least one complete set is required.
    """
    try:
        return await match_service.record_result(session, match_id, result_request, current_player, feed=feed)
    except (ValueError, SQLAlchemyError) as e:
        raise to_http_exception(e)


@router.delete("/api/matches/{match_id}")
async def delete_match(
    match_id: str,
    current_player: Player = Depends(get_current_player),
    feed: MatchEventFeed = Depends(get_match_feed),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await match_service.delete_match(session, match_id, current_player, feed=feed)
        return {"status": "success", "message": f"Match {match_id} deleted"}
    except (ValueError, SQLAlchemyError) as e:
        raise to_http_exception(e)


@router.get("/api/matches/{match_id}", response_model=MatchView)
async def get_match(match_id: str, session: AsyncSession = Depends(get_db_session)):
    view = await match_store.get_match_view(session, match_id)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")
    return view


@router.get("/api/tournaments/{tournament_id}/divisions/{division_id}/matches", response_model=List[MatchView])
async def list_matches(
    tournament_id: str,
    division_id: str,
    status: Optional[List[MatchStatus]] = Query(default=None),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Matches of a division/tournament, optionally filtered by status.

    Query params:
        status: Repeatable, e.g. ?status=pending&status=scheduled
    """
    return await match_store.list_matches(session, tournament_id, division_id, statuses=status)
