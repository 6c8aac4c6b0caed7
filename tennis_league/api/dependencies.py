"""
Request dependencies for FastAPI routes: acting player, change feed, registry cache.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.database.db import get_db_session
from tennis_league.database.models import Player
from tennis_league.services import directory_service
from tennis_league.services.directory_service import RegistryCache
from tennis_league.services.match_events import MatchEventFeed


async def get_current_player(
    session: AsyncSession = Depends(get_db_session),
    x_player_id: Optional[str] = Header(default=None),
) -> Player:
    """
    Dependency to get the acting player from the X-Player-Id header.

    Raises:
        HTTPException: If the header is missing or names an unknown player
    """
    if not x_player_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Player-Id header",
        )
    player = await directory_service.get_player(session, x_player_id)
    if player is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Player not found",
        )
    return player


def get_match_feed(request: Request) -> MatchEventFeed:
    return request.app.state.match_feed


def get_registry_cache(request: Request) -> RegistryCache:
    return request.app.state.registry_cache
