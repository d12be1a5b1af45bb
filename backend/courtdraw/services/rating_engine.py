"""
Rating Engine: Elo-style rating updates after a completed match.

Pure maths first (expectation, K-factor, dominance, categories), then
apply_match_rating() which writes User ratings, RatingChange history and
per-category ranks inside the caller's transaction.

Rank is a cached ordering of users by rating inside one category letter. Only
the letters touched by a match (before or after the update) are recomputed.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlmodel import Session, col, select

from courtdraw.models.match import Match
from courtdraw.models.participant import Participant
from courtdraw.models.rating_change import RatingChange
from courtdraw.models.user import User
from courtdraw.services.errors import RatingError
from courtdraw.services.score_parser import SIDE_PLAYER1, SIDE_PLAYER2, iter_set_scores

logger = logging.getLogger(__name__)

MAX_SET_MARGIN = 6
DEFAULT_K = 28
K_BY_ROUND_NAME = {
    "Final": 40,
    "Semi Finals": 36,
    "Quarter Finals": 32,
}

# (upper bound exclusive, letter, base rating)
CATEGORY_BANDS = [
    (1050, "D", 900),
    (1200, "C", 1050),
    (1350, "B", 1200),
    (1500, "A", 1350),
]
TOP_CATEGORY = "A+"


@dataclass(frozen=True)
class RatingConfig:
    baseline: float = 900.0
    dominance_cap: float = 1.75
    dominance_weight: float = 0.5

    @classmethod
    def from_env(cls) -> "RatingConfig":
        return cls(
            baseline=float(os.getenv("RATING_BASELINE", "900")),
            dominance_cap=float(os.getenv("RATING_DOMINANCE_CAP", "1.75")),
            dominance_weight=float(os.getenv("RATING_DOMINANCE_WEIGHT", "0.5")),
        )


# =============================================================================
# Pure maths
# =============================================================================

def effective_rating(rating: Optional[float], baseline: float = 900.0) -> float:
    """Missing, non-numeric or non-positive ratings fall back to the baseline."""
    try:
        value = float(rating)
    except (TypeError, ValueError):
        return baseline
    if value != value or value <= 0:  # NaN
        return baseline
    return value


def team_rating(ratings: Sequence[Optional[float]], baseline: float = 900.0) -> float:
    if not ratings:
        return baseline
    values = [effective_rating(r, baseline) for r in ratings]
    return sum(values) / len(values)


def expected_score(team: float, opponent: float) -> float:
    return 1.0 / (1.0 + 10 ** ((opponent - team) / 400.0))


def k_factor(round_name: Optional[str]) -> int:
    if not round_name:
        return DEFAULT_K
    return K_BY_ROUND_NAME.get(round_name, DEFAULT_K)


def dominance(sets: Sequence[Tuple[int, int]], winner_side: Optional[int]) -> float:
    """
    Average per-set margin from the winner's perspective, normalized by
    MAX_SET_MARGIN. Never negative; not capped here (the multiplier is).
    """
    if not sets or winner_side not in (SIDE_PLAYER1, SIDE_PLAYER2):
        return 0.0
    sign = 1 if winner_side == SIDE_PLAYER1 else -1
    avg_margin = sum(sign * (a - b) for a, b in sets) / len(sets)
    return max(0.0, avg_margin / MAX_SET_MARGIN)


def dominance_multiplier(dom: float, config: RatingConfig = RatingConfig()) -> float:
    return min(config.dominance_cap, 1.0 + config.dominance_weight * dom)


def category_for_rating(rating: float) -> str:
    """1049 -> "D+", 1050 -> "C-", 1120 -> "C", 1500 -> "A+"."""
    for upper, letter, base in CATEGORY_BANDS:
        if rating < upper:
            diff = rating - base
            if diff < 50:
                return f"{letter}-"
            if diff < 100:
                return letter
            return f"{letter}+"
    return TOP_CATEGORY


def category_letter(category: Optional[str]) -> Optional[str]:
    return category[0] if category else None


@dataclass(frozen=True)
class MatchDeltas:
    k: float                # K after the dominance multiplier
    expected_winner: float  # Expectation of the winning (or player1, on a tie) side
    winner_delta: float
    loser_delta: float


def compute_deltas(
    winner_ratings: Sequence[Optional[float]],
    loser_ratings: Sequence[Optional[float]],
    round_name: Optional[str],
    sets: Sequence[Tuple[int, int]],
    winner_side: Optional[int],
    is_tie: bool = False,
    config: RatingConfig = RatingConfig(),
) -> MatchDeltas:
    """
    Per-user deltas for both sides.

    winner gets K * (1 - E_win), loser gets K * (0 - E_lose). On a tie the first
    side is passed as "winner", both score 0.5 and no dominance applies.
    """
    win_team = team_rating(winner_ratings, config.baseline)
    lose_team = team_rating(loser_ratings, config.baseline)
    e_win = expected_score(win_team, lose_team)
    e_lose = expected_score(lose_team, win_team)

    if is_tie:
        k = float(k_factor(round_name))
        return MatchDeltas(k=k, expected_winner=e_win, winner_delta=k * (0.5 - e_win), loser_delta=k * (0.5 - e_lose))

    k = k_factor(round_name) * dominance_multiplier(dominance(sets, winner_side), config)
    return MatchDeltas(k=k, expected_winner=e_win, winner_delta=k * (1.0 - e_win), loser_delta=k * (0.0 - e_lose))


# =============================================================================
# Persistence
# =============================================================================

def _side_users(session: Session, participant_id: Optional[int], side: str, match_id: int) -> Tuple[Participant, List[User]]:
    if participant_id is None:
        raise RatingError(f"Match {match_id}: {side} has no participant")
    participant = session.get(Participant, participant_id)
    if not participant:
        raise RatingError(f"Match {match_id}: participant {participant_id} ({side}) not found")
    users = [u for u in (session.get(User, uid) for uid in participant.user_ids()) if u is not None]
    if not users:
        raise RatingError(f"Match {match_id}: participant {participant_id} ({side}) has no rateable users")
    return participant, users


def recompute_ranks(session: Session, letters: Iterable[str]) -> int:
    """
    Re-rank users inside each category letter by rating desc, then id. Returns rows touched.

    Buckets are letters, not full labels: "A+" (both the top band and the upper
    part of the A band) ranks together with "A-" and "A".
    """
    session.flush()
    touched = 0
    for letter in sorted(set(l for l in letters if l)):
        users = session.exec(
            select(User)
            .where(col(User.category).startswith(letter))
            .order_by(col(User.rating).desc(), User.id)
        ).all()
        for i, user in enumerate(users, start=1):
            if user.rank != i:
                user.rank = i
                session.add(user)
                touched += 1
    return touched


def apply_match_rating(
    session: Session,
    match: Match,
    config: Optional[RatingConfig] = None,
) -> List[RatingChange]:
    """
    Rate a completed match once. Flushes, never commits.

    Returns the RatingChange rows written; an empty list when the match was
    already rated. Raises RatingError when a side has no identifiable user.
    """
    if match.rating_applied:
        return []
    existing = session.exec(select(RatingChange).where(RatingChange.match_id == match.id)).first()
    if existing:
        logger.warning("Match %s has rating history but rating_applied is false; marking applied", match.id)
        match.rating_applied = True
        session.add(match)
        return []

    cfg = config or RatingConfig.from_env()
    p1, users1 = _side_users(session, match.player1_id, "player1", match.id)
    p2, users2 = _side_users(session, match.player2_id, "player2", match.id)

    if match.winner_id == p1.id:
        winner_side: Optional[int] = SIDE_PLAYER1
        winners, losers = (p1, users1), (p2, users2)
    elif match.winner_id == p2.id:
        winner_side = SIDE_PLAYER2
        winners, losers = (p2, users2), (p1, users1)
    else:
        winner_side = None
        winners, losers = (p1, users1), (p2, users2)

    deltas = compute_deltas(
        winner_ratings=[u.rating for u in winners[1]],
        loser_ratings=[u.rating for u in losers[1]],
        round_name=match.round_name,
        sets=iter_set_scores(match.scores_csv),
        winner_side=winner_side,
        is_tie=winner_side is None,
        config=cfg,
    )

    letters: Set[str] = set()
    changes: List[RatingChange] = []
    for (participant, users), delta in ((winners, deltas.winner_delta), (losers, deltas.loser_delta)):
        for user in users:
            before = effective_rating(user.rating, cfg.baseline)
            after = before + delta
            category_before = user.category or category_for_rating(before)
            category_after = category_for_rating(after)
            letters.update(filter(None, (category_letter(category_before), category_letter(category_after))))

            user.rating = after
            user.category = category_after
            session.add(user)

            change = RatingChange(
                user_id=user.id,
                match_id=match.id,
                tournament_id=match.tournament_id,
                participant_id=participant.id,
                rating_before=before,
                rating_after=after,
                delta=delta,
                category_before=category_before,
                category_after=category_after,
                k_factor=deltas.k,
            )
            session.add(change)
            changes.append(change)

    match.rating_applied = True
    session.add(match)
    recompute_ranks(session, letters)

    logger.info(
        "Rated match %s (tournament %s): K=%.2f winner_delta=%.2f loser_delta=%.2f",
        match.id, match.tournament_id, deltas.k, deltas.winner_delta, deltas.loser_delta,
    )
    return changes


def rating_history(session: Session, user_id: int) -> List[RatingChange]:
    return list(session.exec(
        select(RatingChange).where(RatingChange.user_id == user_id).order_by(RatingChange.id)
    ).all())
