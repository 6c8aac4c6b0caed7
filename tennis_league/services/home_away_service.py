"""
Deterministic home/away assignment for a pairing.

The home side of a pair is a pure function of (division, tournament, pair), so
the UI can show Home/Away badges before a match row exists and every client
computes the same answer.
"""

from typing import Tuple


def stable_string_hash(text: str) -> int:
    """
    32-bit rolling string hash (h = h * 31 + c over UTF-16 code units).

    Independent of the interpreter's per-process hash randomization.

    Returns:
        Unsigned 32-bit hash value
    """
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + code_unit) & 0xFFFFFFFF
    return h


def canonical_pair(player_a: str, player_b: str) -> Tuple[str, str]:
    """Order a pair of player ids so (A, B) and (B, A) map to the same tuple."""
    a, b = str(player_a), str(player_b)
    return (a, b) if a < b else (b, a)


def assign_home(division_id: str, tournament_id: str, player_a: str, player_b: str) -> str:
    """
    Decide which player of a pairing is home.

    Even hash: the lower id of the canonical pair is home; odd hash: the higher one.
    Balances home/away roughly 50/50 across many pairs without storing anything.

    Raises:
        ValueError: If both ids are the same player
    """
    if str(player_a) == str(player_b):
        raise ValueError("A pairing needs two different players")
    low, high = canonical_pair(player_a, player_b)
    h = stable_string_hash(f"{division_id}|{tournament_id}|{low}|{high}")
    return low if h % 2 == 0 else high


def assign_sides(division_id: str, tournament_id: str, player_a: str, player_b: str) -> Tuple[str, str]:
    """Return (home_player_id, away_player_id) for a pairing."""
    home = assign_home(division_id, tournament_id, player_a, player_b)
    away = str(player_b) if home == str(player_a) else str(player_a)
    return home, away
