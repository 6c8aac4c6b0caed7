"""
Stats aggregation service.
Folds played matches into per-player standings totals (wins, sets, games, drinks, points).
"""

from typing import Dict, Iterable, List, Optional

from tennis_league.models.schemas import PlayedMatch, StandingsRow
from tennis_league.utils.constants import POINTS_PER_DRAW, POINTS_PER_LOSS, POINTS_PER_WIN


# ============================================================================
# PlayerTotals Class
# ============================================================================

class PlayerTotals:
    """Running totals for a single player."""

    def __init__(self, player_id: str, name: str = ""):
        self.player_id = player_id
        self.name = name
        self.wins = 0
        self.losses = 0
        self.draws = 0
        self.sets_won = 0
        self.sets_lost = 0
        self.games_won = 0
        self.games_lost = 0
        self.drinks = 0

    @property
    def points(self) -> int:
        """Calculate points: +3 for each win, +1 for each draw."""
        return (
            self.wins * POINTS_PER_WIN
            + self.draws * POINTS_PER_DRAW
            + self.losses * POINTS_PER_LOSS
        )

    def record(self, sets_for: int, sets_against: int, games_for: int, games_against: int, drinks: int) -> None:
        """Record one played match from this player's side."""
        self.sets_won += sets_for
        self.sets_lost += sets_against
        self.games_won += games_for
        self.games_lost += games_against
        self.drinks += drinks
        if sets_for > sets_against:
            self.wins += 1
        elif sets_against > sets_for:
            self.losses += 1
        else:
            self.draws += 1

    def to_row(self) -> StandingsRow:
        return StandingsRow(
            player_id=self.player_id,
            name=self.name,
            points=self.points,
            wins=self.wins,
            losses=self.losses,
            draws=self.draws,
            sets_won=self.sets_won,
            sets_lost=self.sets_lost,
            games_won=self.games_won,
            games_lost=self.games_lost,
            drinks=self.drinks,
        )


# ============================================================================
# Aggregation
# ============================================================================

def aggregate_standings(
    players: Dict[str, str],
    matches: Iterable,
    tournament_id: str,
    division_id: str,
    include_unregistered: bool = False,
) -> List[StandingsRow]:
    """
    Build one standings row per roster player from the played matches in scope.

    Args:
        players: Roster as {player_id: name}
        matches: Match views; only played matches in the scope are counted
        tournament_id: Scope tournament
        division_id: Scope division
        include_unregistered: Also emit rows for players found in matches but
            missing from the roster (e.g. withdrawn players)

    Returns:
        Unordered list of StandingsRow
    """
    totals: Dict[str, PlayerTotals] = {
        player_id: PlayerTotals(player_id, name) for player_id, name in players.items()
    }

    def get_totals(player_id: str) -> Optional[PlayerTotals]:
        if player_id not in totals:
            if not include_unregistered:
                return None
            totals[player_id] = PlayerTotals(player_id, player_id)
        return totals[player_id]

    for match in matches:
        if not isinstance(match, PlayedMatch):
            continue
        if match.tournament_id != tournament_id or match.division_id != division_id:
            continue
        result = match.result
        home = get_totals(match.home_player_id)
        if home is not None:
            home.record(
                result.home_sets_won,
                result.away_sets_won,
                result.home_games_won,
                result.away_games_won,
                result.home_drinks if result.home_had_drink else 0,
            )
        away = get_totals(match.away_player_id)
        if away is not None:
            away.record(
                result.away_sets_won,
                result.home_sets_won,
                result.away_games_won,
                result.home_games_won,
                result.away_drinks if result.away_had_drink else 0,
            )

    return [t.to_row() for t in totals.values()]
