"""
Group standings.

StandingsCalculator is pure: it takes group members and matches and returns
ranked rows. Only completed matches count. Ordering:
  1. match wins (desc)
  2. set-score differential (desc)
  3. total points scored (desc)
  4. head-to-head, only between participants of the same group
  5. participant id (asc)

The session helpers below load a group (or a whole tournament) and feed the
calculator.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from courtdraw.models.group import Group, GroupParticipant
from courtdraw.models.match import STATE_COMPLETED, Match
from courtdraw.models.participant import Participant
from courtdraw.models.stage import STAGE_ROUND_ROBIN, Stage
from courtdraw.services.errors import NotFound
from courtdraw.services.score_parser import iter_set_scores

RESULT_WIN = "W"
RESULT_LOSS = "L"
RESULT_TIE = "T"


@dataclass
class StandingRow:
    participant_id: int
    name: str = ""
    group_id: Optional[int] = None
    wins: int = 0
    losses: int = 0
    ties: int = 0
    differential: int = 0
    points: int = 0
    history: List[str] = field(default_factory=list)
    is_disqualified: bool = False
    rank: int = 0  # 1-based position within the group

    @property
    def played(self) -> int:
        return self.wins + self.losses + self.ties

    def to_dict(self) -> Dict:
        return {
            "participant_id": self.participant_id,
            "name": self.name,
            "group_id": self.group_id,
            "rank": self.rank,
            "wins": self.wins,
            "losses": self.losses,
            "ties": self.ties,
            "differential": self.differential,
            "points": self.points,
            "history": list(self.history),
            "is_disqualified": self.is_disqualified,
        }


# (winner_id, loser_id) -> number of completed meetings won
HeadToHead = Dict[Tuple[int, int], int]


def compare_rows(a: StandingRow, b: StandingRow, head_to_head: HeadToHead) -> int:
    """Negative when a ranks above b."""
    if a.wins != b.wins:
        return b.wins - a.wins
    if a.differential != b.differential:
        return b.differential - a.differential
    if a.points != b.points:
        return b.points - a.points
    if a.group_id is not None and a.group_id == b.group_id:
        net = head_to_head.get((a.participant_id, b.participant_id), 0) - head_to_head.get(
            (b.participant_id, a.participant_id), 0
        )
        if net:
            return -net
    return a.participant_id - b.participant_id


def sort_rows(rows: Iterable[StandingRow], head_to_head: Optional[HeadToHead] = None) -> List[StandingRow]:
    h2h = head_to_head or {}
    ordered = sorted(rows, key=lambda r: r.participant_id)
    return sorted(ordered, key=cmp_to_key(lambda a, b: compare_rows(a, b, h2h)))


class StandingsCalculator:
    """Aggregate one group's completed matches into ranked standings."""

    def __init__(self, members: Sequence[Participant], group_id: Optional[int] = None):
        self.group_id = group_id
        self._rows: Dict[int, StandingRow] = {
            p.id: StandingRow(
                participant_id=p.id,
                name=p.name,
                group_id=group_id,
                is_disqualified=bool(p.is_disqualified),
            )
            for p in members
        }
        self.head_to_head: HeadToHead = defaultdict(int)

    def add_match(self, match: Match) -> None:
        if match.state != STATE_COMPLETED:
            return
        p1 = self._rows.get(match.player1_id)
        p2 = self._rows.get(match.player2_id)
        if p1 is None or p2 is None:
            return

        for s1, s2 in iter_set_scores(match.scores_csv):
            p1.differential += s1 - s2
            p2.differential += s2 - s1
            p1.points += s1
            p2.points += s2

        if match.winner_id is not None and match.winner_id == p1.participant_id:
            self._record(p1, p2)
        elif match.winner_id is not None and match.winner_id == p2.participant_id:
            self._record(p2, p1)
        else:
            p1.ties += 1
            p2.ties += 1
            p1.history.append(RESULT_TIE)
            p2.history.append(RESULT_TIE)

    def _record(self, winner: StandingRow, loser: StandingRow) -> None:
        winner.wins += 1
        winner.history.append(RESULT_WIN)
        loser.losses += 1
        loser.history.append(RESULT_LOSS)
        self.head_to_head[(winner.participant_id, loser.participant_id)] += 1

    def add_matches(self, matches: Iterable[Match]) -> "StandingsCalculator":
        for m in matches:
            self.add_match(m)
        return self

    def standings(self) -> List[StandingRow]:
        ranked = sort_rows(self._rows.values(), self.head_to_head)
        for i, row in enumerate(ranked, start=1):
            row.rank = i
        return ranked


# =============================================================================
# Session helpers
# =============================================================================

def load_group_members(session: Session, group_id: int) -> List[Participant]:
    return list(session.exec(
        select(Participant)
        .join(GroupParticipant, GroupParticipant.participant_id == Participant.id)
        .where(GroupParticipant.group_id == group_id)
        .order_by(Participant.id)
    ).all())


def compute_group_standings(session: Session, group_id: int) -> List[StandingRow]:
    group = session.get(Group, group_id)
    if not group:
        raise NotFound(f"Group {group_id} not found")
    members = load_group_members(session, group_id)
    matches = session.exec(
        select(Match).where(Match.group_id == group_id).order_by(Match.id)
    ).all()
    return StandingsCalculator(members, group_id=group_id).add_matches(matches).standings()


def get_group_standings(session: Session, tournament_id: int) -> List[Tuple[Group, List[StandingRow]]]:
    """Ordered standings for every group of the tournament's round-robin stage."""
    groups = session.exec(
        select(Group)
        .join(Stage, Stage.id == Group.stage_id)
        .where(Group.tournament_id == tournament_id, Stage.type == STAGE_ROUND_ROBIN)
        .order_by(Group.group_index)
    ).all()
    return [(g, compute_group_standings(session, g.id)) for g in groups]
