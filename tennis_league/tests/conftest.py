"""
Shared pytest configuration for tennis league tests.

Every test gets its own in-memory SQLite database (aiosqlite), with the schema
created from the ORM metadata and a small registered roster.
"""

import os

# Must be set before the app modules are imported (rate limiter, engine URL)
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker  # noqa: E402

from tennis_league.database.db import Base  # noqa: E402
from tennis_league.database.models import (  # noqa: E402
    Area,
    Division,
    Player,
    PlayerRole,
    Registration,
    Tournament,
)
from tennis_league.tests.league_data import DIVISION_ID, OTHER_DIVISION_ID, TOURNAMENT_ID  # noqa: E402


@pytest_asyncio.fixture
async def db_session():
    """Create a test database session."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    # Cleanup
    await engine.dispose()


@pytest_asyncio.fixture
async def league(db_session):
    """
    Tournament with two divisions, one area and a registered roster.

    Division A: ana, bruno, carla (players) and the admin.
    Division B: dario only.
    """
    db_session.add(Tournament(id=TOURNAMENT_ID, name="Autumn 2025"))
    db_session.add(Division(id=DIVISION_ID, tournament_id=TOURNAMENT_ID, name="Division A"))
    db_session.add(Division(id=OTHER_DIVISION_ID, tournament_id=TOURNAMENT_ID, name="Division B"))
    db_session.add(Area(id="north", name="North Park"))

    players = {
        "ana": Player(id="p-ana", name="ana lópez", nickname="Ana"),
        "bruno": Player(id="p-bruno", name="bruno díaz"),
        "carla": Player(id="p-carla", name="Carla Ruiz"),
        "admin": Player(id="p-admin", name="League Admin", role=PlayerRole.ADMIN),
        "dario": Player(id="p-dario", name="Darío Gil"),
    }
    db_session.add_all(players.values())
    await db_session.flush()

    for key in ("ana", "bruno", "carla", "admin"):
        db_session.add(
            Registration(player_id=players[key].id, tournament_id=TOURNAMENT_ID, division_id=DIVISION_ID)
        )
    db_session.add(
        Registration(player_id=players["dario"].id, tournament_id=TOURNAMENT_ID, division_id=OTHER_DIVISION_ID)
    )
    await db_session.commit()
    return players
