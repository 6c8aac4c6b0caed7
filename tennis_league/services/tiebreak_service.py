"""
Tie-break comparator for standings rows.

Levels, each consulted only when the previous one ties:
points (desc) -> head-to-head wins -> set ratio -> game ratio -> name (asc).
Ratios are compared as exact fractions so near-equal floats never tie or flip.
"""

import unicodedata
from fractions import Fraction
from functools import cmp_to_key
from typing import Dict, Iterable, List, Sequence, Tuple

from tennis_league.models.schemas import PlayedMatch, StandingsRow


def set_ratio(row: StandingsRow) -> Fraction:
    """sets_won / (sets_won + sets_lost), 0 when no sets were played."""
    total = row.sets_won + row.sets_lost
    return Fraction(row.sets_won, total) if total else Fraction(0)


def game_ratio(row: StandingsRow) -> Fraction:
    """games_won / (games_won + games_lost), 0 when no games were played."""
    total = row.games_won + row.games_lost
    return Fraction(row.games_won, total) if total else Fraction(0)


def name_sort_key(name: str) -> Tuple[str, str, str]:
    """
    Locale-aware alphabetical key.

    Accents and case are ignored first ("Álvarez" sorts with "alvarez"), then
    case, then the raw string so distinct names never compare equal.
    """
    normalized = unicodedata.normalize("NFKD", name or "")
    base = "".join(c for c in normalized if not unicodedata.combining(c)).casefold()
    return (base, (name or "").casefold(), name or "")


def _played_in_scope(matches: Iterable, division_id: str, tournament_id: str) -> List[PlayedMatch]:
    return [
        m for m in matches
        if isinstance(m, PlayedMatch)
        and m.division_id == division_id
        and m.tournament_id == tournament_id
    ]


def head_to_head(
    player_a: str,
    player_b: str,
    division_id: str,
    tournament_id: str,
    matches: Iterable,
) -> Tuple[int, int]:
    """
    Count match wins between exactly this pair.

    Returns:
        (wins of player_a, wins of player_b); drawn matches count for neither
    """
    a_wins = b_wins = 0
    for match in _played_in_scope(matches, division_id, tournament_id):
        if {match.home_player_id, match.away_player_id} != {player_a, player_b}:
            continue
        winner = match.winner_id
        if winner == player_a:
            a_wins += 1
        elif winner == player_b:
            b_wins += 1
    return a_wins, b_wins


def _sign(value) -> int:
    return (value > 0) - (value < 0)


def _compare_after_head_to_head(a: StandingsRow, b: StandingsRow) -> int:
    # Higher ratio ranks ahead, so compare b against a
    result = _sign(set_ratio(b) - set_ratio(a))
    if result:
        return result
    result = _sign(game_ratio(b) - game_ratio(a))
    if result:
        return result
    key_a, key_b = name_sort_key(a.name), name_sort_key(b.name)
    if key_a != key_b:
        return -1 if key_a < key_b else 1
    if a.player_id != b.player_id:
        return -1 if a.player_id < b.player_id else 1
    return 0


def compare_rows(
    a: StandingsRow,
    b: StandingsRow,
    division_id: str,
    tournament_id: str,
    matches: Iterable = (),
) -> int:
    """
    Compare two standings rows.

    Returns:
        -1 if a ranks ahead of b, 1 if b ranks ahead, 0 only for the same player
    """
    if a.points != b.points:
        return -1 if a.points > b.points else 1

    a_wins, b_wins = head_to_head(a.player_id, b.player_id, division_id, tournament_id, matches)
    if a_wins != b_wins:
        return -1 if a_wins > b_wins else 1

    return _compare_after_head_to_head(a, b)


def _mini_league_wins(group: Sequence[StandingsRow], played: List[PlayedMatch]) -> Dict[str, int]:
    """Wins of each tied player against the other members of the tied group."""
    members = {row.player_id for row in group}
    wins = {row.player_id: 0 for row in group}
    for match in played:
        if match.home_player_id in members and match.away_player_id in members:
            winner = match.winner_id
            if winner is not None:
                wins[winner] += 1
    return wins


def rank_rows(
    rows: Iterable[StandingsRow],
    division_id: str,
    tournament_id: str,
    matches: Iterable = (),
) -> List[StandingsRow]:
    """
    Order a roster.

    Rows are grouped by points; inside a tied group head-to-head is the number
    of wins against the other tied players, which for two tied players is
    exactly the pairwise rule of compare_rows.

    Returns:
        New list, best first
    """
    played = _played_in_scope(list(matches), division_id, tournament_id)
    by_points: Dict[int, List[StandingsRow]] = {}
    for row in rows:
        by_points.setdefault(row.points, []).append(row)

    ranked: List[StandingsRow] = []
    for points in sorted(by_points, reverse=True):
        group = by_points[points]
        if len(group) == 1:
            ranked.extend(group)
            continue
        h2h = _mini_league_wins(group, played)

        def group_compare(a: StandingsRow, b: StandingsRow) -> int:
            if h2h[a.player_id] != h2h[b.player_id]:
                return -1 if h2h[a.player_id] > h2h[b.player_id] else 1
            return _compare_after_head_to_head(a, b)

        ranked.extend(sorted(group, key=cmp_to_key(group_compare)))
    return ranked
