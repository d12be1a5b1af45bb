"""
Score parser for per-set score strings as stored in Match.scores_csv.

Supports formats like:
  "8-4"             → 1 set
  "6-3,4-6,10-7"    → 3 sets (canonical storage form)
  "6-3, 4-6 10-7"   → commas and/or whitespace between sets

Each entry is "<player1 games>-<player2 games>".
Returns None on parse failure; callers decide whether that is fatal.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

SIDE_PLAYER1 = 1
SIDE_PLAYER2 = 2


@dataclass
class ParsedScore:
    sets: List[Tuple[int, int]]  # (player1_games, player2_games) per set
    player1_sets_won: int
    player2_sets_won: int
    player1_games: int
    player2_games: int

    @property
    def winning_side(self) -> Optional[int]:
        """Side that won more sets; games decide a level set count; None when level."""
        if self.player1_sets_won != self.player2_sets_won:
            return SIDE_PLAYER1 if self.player1_sets_won > self.player2_sets_won else SIDE_PLAYER2
        if self.player1_games != self.player2_games:
            return SIDE_PLAYER1 if self.player1_games > self.player2_games else SIDE_PLAYER2
        return None

    def to_csv(self) -> str:
        return ",".join(f"{a}-{b}" for a, b in self.sets)


def parse_scores_csv(raw: Optional[str]) -> Optional[ParsedScore]:
    """Parse a scores string into structured set/game counts.

    Returns None if the string is empty or malformed.
    """
    if raw is None or not raw.strip():
        return None

    normalized = raw.replace(",", " ").strip()
    parts = normalized.split()

    sets: List[Tuple[int, int]] = []
    for part in parts:
        pair = part.split("-")
        if len(pair) != 2:
            return None
        try:
            a = int(pair[0])
            b = int(pair[1])
        except ValueError:
            return None
        if a < 0 or b < 0:
            return None
        sets.append((a, b))

    if not sets:
        return None

    return ParsedScore(
        sets=sets,
        player1_sets_won=sum(1 for a, b in sets if a > b),
        player2_sets_won=sum(1 for a, b in sets if b > a),
        player1_games=sum(a for a, _ in sets),
        player2_games=sum(b for _, b in sets),
    )


def iter_set_scores(raw: Optional[str]) -> List[Tuple[int, int]]:
    """Lenient per-set reader used by standings: malformed entries are skipped."""
    if not raw:
        return []
    result: List[Tuple[int, int]] = []
    for entry in raw.split(","):
        pair = entry.strip().split("-")
        if len(pair) != 2:
            continue
        try:
            result.append((int(pair[0]), int(pair[1])))
        except ValueError:
            continue
    return result
