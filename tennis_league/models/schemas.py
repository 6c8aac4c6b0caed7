"""
Pydantic models for request validation and the match/standings read models.
"""

from datetime import date as date_type, datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from tennis_league.utils.constants import MAX_ANECDOTE_WORDS, MAX_GAMES_PER_SET
from tennis_league.utils.datetime_utils import normalize_match_time


# ============================================================================
# Requests
# ============================================================================


class SetScore(BaseModel):
    """Games won by each side in one set. Blank or non-numeric scores mark the set as not played."""

    home_games: Optional[int] = Field(default=None, ge=0, le=MAX_GAMES_PER_SET)
    away_games: Optional[int] = Field(default=None, ge=0, le=MAX_GAMES_PER_SET)

    @field_validator("home_games", "away_games", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str):
            text = value.strip()
            if not text.isdigit():
                return None
            return int(text)
        return value

    @property
    def is_complete(self) -> bool:
        return self.home_games is not None and self.away_games is not None


class MatchResultInput(BaseModel):
    """Full result of a match. Replaces any previously recorded result."""

    sets: List[SetScore] = Field(default_factory=list)
    home_had_drink: bool = False
    away_had_drink: bool = False
    home_drinks: int = Field(default=0, ge=0)
    away_drinks: int = Field(default=0, ge=0)
    anecdote: Optional[str] = None

    @field_validator("anecdote")
    @classmethod
    def anecdote_word_limit(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip()
        if not text:
            return None
        if len(text.split()) > MAX_ANECDOTE_WORDS:
            raise ValueError(f"Anecdote must be {MAX_ANECDOTE_WORDS} words or fewer")
        return text


class RecordResultRequest(MatchResultInput):
    """Result for an existing match. ``away_player_id`` is required when the match is still pending."""

    away_player_id: Optional[str] = None


class ScheduleFields(BaseModel):
    """When and where a match takes place."""

    date: date_type
    time: Optional[str] = None
    area_id: Optional[str] = None
    venue_detail: Optional[str] = None

    @field_validator("time")
    @classmethod
    def valid_time(cls, value: Optional[str]) -> Optional[str]:
        return normalize_match_time(value)

    @field_validator("venue_detail")
    @classmethod
    def strip_venue(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class CreateMatchRequest(ScheduleFields):
    """
    Create a match.

    - No ``away_player_id``: an open (pending) slot published by ``home_player_id``
      (defaults to the acting player).
    - With ``away_player_id``: a scheduled match between the two players.
    - With ``away_player_id`` and ``result``: a played match (walk-up result entry).

    ``auto_assign_home`` lets the Home/Away assigner decide which of the two named
    players is home.
    """

    tournament_id: str
    division_id: str
    home_player_id: Optional[str] = None
    away_player_id: Optional[str] = None
    auto_assign_home: bool = False
    result: Optional[MatchResultInput] = None

    @model_validator(mode="after")
    def check_players(self):
        if self.result is not None and not self.away_player_id:
            raise ValueError("A result requires both players")
        if self.auto_assign_home and not (self.home_player_id and self.away_player_id):
            raise ValueError("auto_assign_home requires both players")
        if self.away_player_id and self.away_player_id == self.home_player_id:
            raise ValueError("A player cannot play against themselves")
        return self


class UpdateScheduleRequest(ScheduleFields):
    """New schedule for a pending or scheduled match."""


# ============================================================================
# Match read models (closed status variant)
# ============================================================================


class MatchSetView(BaseModel):
    """One stored set."""

    model_config = ConfigDict(from_attributes=True)

    set_number: int
    home_games: int
    away_games: int


class MatchResultView(BaseModel):
    """Recorded result of a played match."""

    sets: List[MatchSetView]
    home_sets_won: int
    away_sets_won: int
    home_games_won: int
    away_games_won: int
    home_had_drink: bool = False
    away_had_drink: bool = False
    home_drinks: int = 0
    away_drinks: int = 0
    anecdote: Optional[str] = None

    @property
    def winner_side(self) -> Optional[str]:
        """'home', 'away' or None for a drawn match (decided by sets won)."""
        if self.home_sets_won > self.away_sets_won:
            return "home"
        if self.away_sets_won > self.home_sets_won:
            return "away"
        return None


class _MatchViewBase(BaseModel):
    id: str
    tournament_id: str
    division_id: str
    home_player_id: str
    date: date_type
    time: Optional[str] = None
    time_block: Optional[str] = None
    area_id: Optional[str] = None
    venue_detail: Optional[str] = None
    created_by: str
    created_at: Optional[datetime] = None

    def involves(self, player_id: str) -> bool:
        return player_id in (self.home_player_id, getattr(self, "away_player_id", None))


class PendingMatch(_MatchViewBase):
    """Open slot: no opponent yet."""

    status: Literal["pending"] = "pending"
    away_player_id: None = None


class ScheduledMatch(_MatchViewBase):
    """Both players known, not yet played."""

    status: Literal["scheduled"] = "scheduled"
    away_player_id: str


class PlayedMatch(_MatchViewBase):
    """Match with a recorded result."""

    status: Literal["played"] = "played"
    away_player_id: str
    result: MatchResultView

    @property
    def winner_id(self) -> Optional[str]:
        side = self.result.winner_side
        if side == "home":
            return self.home_player_id
        if side == "away":
            return self.away_player_id
        return None


MatchView = Annotated[Union[PendingMatch, ScheduledMatch, PlayedMatch], Field(discriminator="status")]
match_view_adapter = TypeAdapter(MatchView)


# ============================================================================
# Standings
# ============================================================================


class StandingsRow(BaseModel):
    """Aggregated stats for one player in a division/tournament."""

    player_id: str
    name: str
    points: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    drinks: int = 0

    @property
    def matches_played(self) -> int:
        return self.wins + self.losses + self.draws

    @property
    def set_diff(self) -> int:
        return self.sets_won - self.sets_lost


class RankedStandingsRow(StandingsRow):
    """Standings row with its position and scheduling progress."""

    rank: int
    display_name: str
    matches_scheduled: int = 0
    matches_not_scheduled: int = 0


class DivisionSummary(BaseModel):
    """Highlights for a division/tournament."""

    tournament_id: str
    division_id: str
    players: int
    matches_played: int
    matches_scheduled: int
    matches_pending: int
    total_drinks: int
    leader: Optional[RankedStandingsRow] = None
    top_drinker: Optional[RankedStandingsRow] = None


class OpponentView(BaseModel):
    player_id: str
    display_name: str
    home_player_id: str


class PlayerOverview(BaseModel):
    """A player's played and scheduled matches, and the opponents still to arrange."""

    player_id: str
    standing: Optional[RankedStandingsRow] = None
    played: List[PlayedMatch]
    scheduled: List[ScheduledMatch]
    upcoming: List[OpponentView]


class HomeAwayResponse(BaseModel):
    home_player_id: str
    away_player_id: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str
