"""
SQLAlchemy ORM models for the tennis league.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tennis_league.database.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class MatchStatus(str, enum.Enum):
    """Match lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    PLAYED = "played"


class PlayerRole(str, enum.Enum):
    """Player role enum."""

    PLAYER = "player"
    ADMIN = "admin"


class TournamentStatus(str, enum.Enum):
    """Tournament / division status enum."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    FINISHED = "finished"


class Area(Base):
    """Coarse locations where matches are played (e.g. a neighbourhood or club)."""

    __tablename__ = "areas"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False, unique=True)


class Player(Base):
    """Player profiles."""

    __tablename__ = "players"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    nickname = Column(String, nullable=True)  # Shorter preferred name
    role = Column(Enum(PlayerRole), default=PlayerRole.PLAYER, nullable=False)
    preferred_areas = Column(JSON, nullable=False, default=list)  # List of area ids
    availability = Column(JSON, nullable=False, default=dict)  # {"Monday": {"Morning": true}}
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    registrations = relationship("Registration", back_populates="player")


class Tournament(Base):
    """Tournaments (reference data)."""

    __tablename__ = "tournaments"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    status = Column(Enum(TournamentStatus), default=TournamentStatus.ACTIVE, nullable=False)
    start_date = Column(Date, nullable=True)

    # Relationships
    divisions = relationship("Division", back_populates="tournament")


class Division(Base):
    """Divisions within a tournament (reference data)."""

    __tablename__ = "divisions"

    id = Column(String, primary_key=True, default=_new_id)
    tournament_id = Column(String, ForeignKey("tournaments.id"), nullable=True)
    name = Column(String, nullable=False)
    status = Column(Enum(TournamentStatus), default=TournamentStatus.ACTIVE, nullable=False)

    # Relationships
    tournament = relationship("Tournament", back_populates="divisions")


class Registration(Base):
    """Player registered into a (tournament, division)."""

    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(String, ForeignKey("players.id"), nullable=False)
    tournament_id = Column(String, ForeignKey("tournaments.id"), nullable=False)
    division_id = Column(String, ForeignKey("divisions.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    player = relationship("Player", back_populates="registrations")

    __table_args__ = (
        UniqueConstraint(
            "player_id", "tournament_id", "division_id", name="uq_registration_player_scope"
        ),
        Index("idx_registrations_scope", "tournament_id", "division_id"),
    )


class Match(Base):
    """Matches: open slots, scheduled matches and results."""

    __tablename__ = "matches"

    id = Column(String, primary_key=True, default=_new_id)
    tournament_id = Column(String, ForeignKey("tournaments.id"), nullable=False)
    division_id = Column(String, ForeignKey("divisions.id"), nullable=False)
    status = Column(Enum(MatchStatus), nullable=False, default=MatchStatus.PENDING)
    home_player_id = Column(String, ForeignKey("players.id"), nullable=False)
    away_player_id = Column(String, ForeignKey("players.id"), nullable=True)  # NULL while pending
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=True)  # "HH:MM"
    time_block = Column(String, nullable=True)  # Morning / Afternoon / Evening
    area_id = Column(String, ForeignKey("areas.id"), nullable=True)
    venue_detail = Column(Text, nullable=True)
    home_sets_won = Column(Integer, default=0, nullable=False)
    away_sets_won = Column(Integer, default=0, nullable=False)
    home_games_won = Column(Integer, default=0, nullable=False)
    away_games_won = Column(Integer, default=0, nullable=False)
    home_had_drink = Column(Boolean, default=False, nullable=False)
    away_had_drink = Column(Boolean, default=False, nullable=False)
    home_drinks = Column(Integer, default=0, nullable=False)
    away_drinks = Column(Integer, default=0, nullable=False)
    anecdote = Column(Text, nullable=True)
    created_by = Column(String, ForeignKey("players.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    sets = relationship(
        "MatchSet",
        back_populates="match",
        order_by="MatchSet.set_number",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'PENDING') OR (away_player_id IS NOT NULL)",
            name="ck_matches_away_player_after_pending",
        ),
        Index("idx_matches_scope", "tournament_id", "division_id"),
        Index("idx_matches_scope_status", "tournament_id", "division_id", "status"),
    )


class MatchSet(Base):
    """Per-set game counts for a played match."""

    __tablename__ = "match_sets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String, ForeignKey("matches.id"), nullable=False)
    set_number = Column(Integer, nullable=False)  # 1-based
    home_games = Column(Integer, nullable=False)
    away_games = Column(Integer, nullable=False)

    # Relationships
    match = relationship("Match", back_populates="sets")

    __table_args__ = (
        UniqueConstraint("match_id", "set_number", name="uq_match_sets_match_set_number"),
        Index("idx_match_sets_match_id", "match_id"),
    )
