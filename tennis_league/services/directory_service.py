"""
Player/division directory: read-only access to players and registrations.

Roster lookups go through a Redis-backed read-through cache with a TTL.
The cache is an object the caller owns (per app or per test), not module state.
"""

import json
import logging
import unicodedata
from typing import Awaitable, Callable, Dict, List, Optional

from redis.asyncio import Redis
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.database.models import Area, Division, Player, PlayerRole, Registration, Tournament
from tennis_league.services import redis_service
from tennis_league.utils.constants import REGISTRY_CACHE_TTL_SECONDS, WEEK_DAYS, TIME_BLOCKS

logger = logging.getLogger(__name__)


# ============================================================================
# Display names
# ============================================================================

def to_title_case(text: str) -> str:
    """Title-case a name after NFC normalization ("josé  pérez" -> "José Pérez")."""
    normalized = unicodedata.normalize("NFC", text or "").strip().lower()
    return " ".join(word[:1].upper() + word[1:] for word in normalized.split())


def display_name(player: Player) -> str:
    """Preferred (short) name if set, otherwise the full name."""
    base = player.nickname if player.nickname and player.nickname.strip() else player.name
    return to_title_case(base or "")


def empty_availability() -> Dict[str, Dict[str, bool]]:
    """Weekly availability calendar with every slot off."""
    return {day: {block: False for block, _, _ in TIME_BLOCKS} for day in WEEK_DAYS}


def is_available(player: Player, day: str, block: str) -> bool:
    return bool((player.availability or {}).get(day, {}).get(block, False))


# ============================================================================
# Read-through cache
# ============================================================================

RedisGetter = Callable[[], Awaitable[Optional[Redis]]]


class RegistryCache:
    """
    Read-through cache for directory lookups, stored in Redis with a TTL.

    Values are JSON documents under ``registry:<key>``. Every Redis error is
    logged and treated as a miss, so lookups fall back to the database.
    """

    key_prefix = "registry:"

    def __init__(
        self,
        ttl_seconds: int = REGISTRY_CACHE_TTL_SECONDS,
        redis_getter: RedisGetter = redis_service.get_redis_client,
    ):
        self.ttl_seconds = ttl_seconds
        self._redis_getter = redis_getter

    async def get(self, key: str):
        try:
            client = await self._redis_getter()
            if client is None:
                return None
            value = await client.get(f"{self.key_prefix}{key}")
        except Exception as e:
            logger.warning(f"Error reading {key} from registry cache: {e}")
            return None
        return json.loads(value) if value is not None else None

    async def put(self, key: str, value) -> None:
        if self.ttl_seconds <= 0:
            return
        try:
            client = await self._redis_getter()
            if client is None:
                return
            await client.setex(f"{self.key_prefix}{key}", self.ttl_seconds, json.dumps(value))
        except Exception as e:
            logger.warning(f"Error writing {key} to registry cache: {e}")

    async def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or every registry key when key is None."""
        try:
            client = await self._redis_getter()
            if client is None:
                return
            if key is not None:
                await client.delete(f"{self.key_prefix}{key}")
                return
            keys = [k async for k in client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await client.delete(*keys)
                logger.info(f"Cleared {len(keys)} registry cache entries")
        except Exception as e:
            logger.warning(f"Error invalidating registry cache: {e}")


def _roster_entry(player: Player) -> Dict[str, Optional[str]]:
    return {"id": player.id, "name": player.name, "nickname": player.nickname, "role": player.role.value}


def _player_from_entry(entry: Dict[str, Optional[str]]) -> Player:
    # Detached instance; never added to a session
    return Player(id=entry["id"], name=entry["name"], nickname=entry["nickname"], role=PlayerRole(entry["role"]))



# ============================================================================
# Queries
# ============================================================================

async def get_player(session: AsyncSession, player_id: str) -> Optional[Player]:
    result = await session.execute(select(Player).where(Player.id == player_id))
    return result.scalar_one_or_none()


async def get_tournament(session: AsyncSession, tournament_id: str) -> Optional[Tournament]:
    result = await session.execute(select(Tournament).where(Tournament.id == tournament_id))
    return result.scalar_one_or_none()


async def get_division(session: AsyncSession, division_id: str) -> Optional[Division]:
    result = await session.execute(select(Division).where(Division.id == division_id))
    return result.scalar_one_or_none()


async def get_area(session: AsyncSession, area_id: str) -> Optional[Area]:
    result = await session.execute(select(Area).where(Area.id == area_id))
    return result.scalar_one_or_none()


async def is_registered(session: AsyncSession, player_id: str, tournament_id: str, division_id: str) -> bool:
    """Whether the player holds a registration for this (tournament, division)."""
    result = await session.execute(
        select(Registration.id).where(
            and_(
                Registration.player_id == player_id,
                Registration.tournament_id == tournament_id,
                Registration.division_id == division_id,
            )
        )
    )
    return result.first() is not None


async def get_roster(
    session: AsyncSession,
    tournament_id: str,
    division_id: str,
    cache: Optional[RegistryCache] = None,
) -> List[Player]:
    """
    Players registered in a division/tournament, admins excluded, sorted by name.

    Args:
        cache: Optional read-through cache; hits skip the query and return
            detached players carrying id, name, nickname and role only
    """
    key = f"roster:{tournament_id}:{division_id}"
    if cache is not None:
        cached = await cache.get(key)
        if cached is not None:
            return [_player_from_entry(entry) for entry in cached]

    result = await session.execute(
        select(Player)
        .join(Registration, Registration.player_id == Player.id)
        .where(
            and_(
                Registration.tournament_id == tournament_id,
                Registration.division_id == division_id,
                Player.role != PlayerRole.ADMIN,
            )
        )
    )
    roster = sorted(result.scalars().unique().all(), key=lambda p: (p.name.casefold(), p.id))

    if cache is not None:
        await cache.put(key, [_roster_entry(p) for p in roster])
        logger.debug(f"Cached roster for {tournament_id}/{division_id} ({len(roster)} players)")
    return roster


async def get_names(session: AsyncSession, player_ids: List[str]) -> Dict[str, str]:
    """Display names for a set of player ids (unknown ids are omitted)."""
    if not player_ids:
        return {}
    result = await session.execute(select(Player).where(Player.id.in_(set(player_ids))))
    return {p.id: display_name(p) for p in result.scalars().all()}


async def get_area_names(session: AsyncSession) -> Dict[str, str]:
    result = await session.execute(select(Area))
    return {a.id: a.name for a in result.scalars().all()}
