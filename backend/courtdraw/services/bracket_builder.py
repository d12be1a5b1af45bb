"""
Bracket Builder: persist a BracketPlan skeleton as Final-Stage matches.

One materialization routine serves every bracket shape (power of two, byes,
play-ins), every label scheme (Seed<n>, group-rank A1/B1..., concrete
participants) and admin-confirmed drafts. Slot wiring per side:
  Seeded(k)   -> stage_playerN_id = placeholder k (playerN_id if already resolved)
  Feeder(key) -> playerN_prereq_match_id = the feeding match
  Bye         -> nothing

Bye matches (auto_complete strategy) with a known side are completed here, in
the same transaction, and their side is pushed straight into the consuming
match. Nothing in this module commits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import func
from sqlmodel import Session, col, select

from courtdraw.models.group import Group, GroupParticipant
from courtdraw.models.match import STATE_COMPLETED, Match
from courtdraw.models.participant import Participant
from courtdraw.models.stage import STAGE_SINGLE, Stage
from courtdraw.models.stage_participant import StageParticipant
from courtdraw.models.tournament import Tournament
from courtdraw.services.bracket_rules import (
    Bye,
    Feeder,
    Seeded,
    SkeletonMatch,
    SlotSource,
    build_draft_skeleton,
    build_skeleton,
    group_letter,
    plan_bracket,
    seed_label,
)
from courtdraw.services.errors import ConsistencyError, NotFound, ValidationFailed
from courtdraw.services.tournament_service import (
    BRACKET_SEEDING_GROUP_RANK,
    STATE_IN_PROGRESS,
    get_final_stage,
    get_group_stage,
)

logger = logging.getLogger(__name__)

BYE_LABEL = "BYE"


# =============================================================================
# Materialized slot sources
# =============================================================================

@dataclass(frozen=True)
class Resolved:
    """Slot holds a concrete participant."""
    participant_id: int
    stage_participant_id: Optional[int] = None


@dataclass(frozen=True)
class Placeholder:
    """Slot is bound to a stage placeholder that has no participant yet."""
    stage_participant_id: int


@dataclass(frozen=True)
class Awaiting:
    """Slot waits for the winner of another match."""
    match_id: int


@dataclass(frozen=True)
class Empty:
    """Nothing will arrive (structural bye) or nothing is wired."""
    pass


MatchSlot = Union[Resolved, Placeholder, Awaiting, Empty]


def match_slot_source(match: Match, side: int) -> MatchSlot:
    """Typed view of one side of a match (side 1 or 2)."""
    if side not in (1, 2):
        raise ValueError(f"side must be 1 or 2, got {side}")
    player_id = match.player1_id if side == 1 else match.player2_id
    stage_player_id = match.stage_player1_id if side == 1 else match.stage_player2_id
    prereq_id = match.player1_prereq_match_id if side == 1 else match.player2_prereq_match_id

    if player_id is not None:
        return Resolved(participant_id=player_id, stage_participant_id=stage_player_id)
    if stage_player_id is not None:
        return Placeholder(stage_participant_id=stage_player_id)
    if prereq_id is not None:
        return Awaiting(match_id=prereq_id)
    return Empty()


def match_slots(match: Match) -> Tuple[MatchSlot, MatchSlot]:
    return match_slot_source(match, 1), match_slot_source(match, 2)


# =============================================================================
# Materialization
# =============================================================================

def _slot_label(source: SlotSource, placeholders: Dict[int, StageParticipant], created: Dict[int, Match]) -> str:
    if isinstance(source, Seeded):
        return placeholders[source.seed].participant_label
    if isinstance(source, Feeder):
        return f"Winner of M{created[source.key].id}"
    return BYE_LABEL


def _wire_slot(match: Match, side: int, source: SlotSource, placeholders: Dict[int, StageParticipant], created: Dict[int, Match]) -> None:
    if isinstance(source, Seeded):
        sp = placeholders.get(source.seed)
        if sp is None:
            raise ConsistencyError(f"No placeholder for seed {source.seed} in stage {match.stage_id}")
        setattr(match, f"stage_player{side}_id", sp.id)
        setattr(match, f"player{side}_id", sp.participant_id)
    elif isinstance(source, Feeder):
        setattr(match, f"player{side}_prereq_match_id", created[source.key].id)


def _complete_structural_bye(session: Session, bye: Match, skeleton: List[SkeletonMatch], node: SkeletonMatch, created: Dict[int, Match]) -> None:
    """Complete a bye whose real side is known and push that side into its consumer."""
    side = 1 if not isinstance(node.slot1, Bye) else 2
    stage_player_id = getattr(bye, f"stage_player{side}_id")
    player_id = getattr(bye, f"player{side}_id")

    bye.state = STATE_COMPLETED
    bye.winner_id = player_id
    bye.completed_at = datetime.utcnow()
    session.add(bye)

    for consumer_node in skeleton:
        for consumer_side, src in ((1, consumer_node.slot1), (2, consumer_node.slot2)):
            if isinstance(src, Feeder) and src.key == node.key:
                consumer = created[consumer_node.key]
                setattr(consumer, f"player{consumer_side}_prereq_match_id", None)
                setattr(consumer, f"stage_player{consumer_side}_id", stage_player_id)
                setattr(consumer, f"player{consumer_side}_id", player_id)
                session.add(consumer)


def materialize_bracket(
    session: Session,
    tournament: Tournament,
    stage: Stage,
    placeholders: Dict[int, StageParticipant],
) -> List[Match]:
    """
    Create every Final-Stage match for len(placeholders) qualifiers.

    placeholders maps seed (1..N) to its StageParticipant row, resolved or not.
    Returns the created matches in insertion order.
    """
    plan = plan_bracket(len(placeholders), tournament.bye_strategy)
    matches = materialize_skeleton(session, tournament, stage, build_skeleton(plan), placeholders)
    logger.info(
        "Bracket materialized for tournament %s stage %s: qualifiers=%s size=%s play_ins=%s byes=%s matches=%s strategy=%s",
        tournament.id, stage.id, plan.qualifier_count, plan.bracket_size,
        plan.play_in_count, plan.bye_count, len(matches), plan.bye_strategy,
    )
    return matches


def materialize_skeleton(
    session: Session,
    tournament: Tournament,
    stage: Stage,
    skeleton: List[SkeletonMatch],
    placeholders: Dict[int, StageParticipant],
) -> List[Match]:
    """One Match per skeleton node with its slots wired; seeded byes are completed."""
    created: Dict[int, Match] = {}
    for node in skeleton:
        match = Match(
            tournament_id=tournament.id,
            stage_id=stage.id,
            round_number=node.round_number,
            round_name=node.round_name,
            sequence_in_round=node.sequence_in_round,
            is_bye=node.is_bye,
            is_final=node.is_final,
        )
        _wire_slot(match, 1, node.slot1, placeholders, created)
        _wire_slot(match, 2, node.slot2, placeholders, created)
        session.add(match)
        session.flush()
        match.identifier = (
            f"{_slot_label(node.slot1, placeholders, created)} vs "
            f"{_slot_label(node.slot2, placeholders, created)} ({node.round_name})"
        )
        created[node.key] = match

    # Byes with a seeded side never wait for input
    for node in skeleton:
        if node.is_bye and not any(isinstance(s, Feeder) for s in node.sources):
            _complete_structural_bye(session, created[node.key], skeleton, node, created)

    session.flush()
    return [created[node.key] for node in skeleton]


# =============================================================================
# Final Stage generation
# =============================================================================

def _ensure_not_generated(session: Session, stage: Stage) -> None:
    existing = session.exec(
        select(func.count()).select_from(StageParticipant).where(StageParticipant.stage_id == stage.id)
    ).one()
    if existing:
        logger.error("Stage participants already exist for tournament %s stage %s", stage.tournament_id, stage.id)
        raise ConsistencyError(f"Stage participants already generated for stage {stage.id}")


def qualifier_labels(tournament: Tournament, group_sizes: List[int]) -> List[str]:
    """
    Placeholder labels in seed order for a round-robin tournament.

    seeded: Seed1..SeedN. group_rank: rank-major (A1, B1, ..., A2, B2, ...),
    skipping ranks a small group cannot fill.
    """
    advance = tournament.participants_advance or 0
    per_rank = [
        f"{group_letter(g)}{rank}"
        for rank in range(1, advance + 1)
        for g, size in enumerate(group_sizes)
        if size >= rank
    ]
    if tournament.bracket_seeding == BRACKET_SEEDING_GROUP_RANK:
        return per_rank
    return [seed_label(k) for k in range(1, len(per_rank) + 1)]


def generate_final_stage_placeholders(session: Session, tournament_id: int) -> Tuple[List[StageParticipant], List[Match]]:
    """
    Create the Final-Stage placeholders and the full bracket skeleton for a
    round-robin tournament. Placeholders start unresolved; they are bound on
    group completion (group_rank) or after the whole group stage (seeded).
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    if not tournament.participants_advance or tournament.participants_advance <= 0:
        raise ValidationFailed("participants_advance must be a positive number")

    group_stage = get_group_stage(session, tournament_id)
    final_stage = get_final_stage(session, tournament_id)
    _ensure_not_generated(session, final_stage)

    groups = session.exec(
        select(Group).where(Group.stage_id == group_stage.id).order_by(Group.group_index)
    ).all()
    if not groups:
        logger.error("No groups found for tournament %s stage %s", tournament_id, group_stage.id)
        raise ConsistencyError(f"No groups found for tournament {tournament_id}")

    sizes = [
        session.exec(
            select(func.count()).select_from(GroupParticipant).where(GroupParticipant.group_id == g.id)
        ).one()
        for g in groups
    ]
    labels = qualifier_labels(tournament, sizes)
    if len(labels) < 2:
        logger.error("Only %s qualifiers for tournament %s stage %s", len(labels), tournament_id, final_stage.id)
        raise ConsistencyError(f"At least 2 qualifiers are required, got {len(labels)}")

    placeholders: Dict[int, StageParticipant] = {}
    for seed, label in enumerate(labels, start=1):
        sp = StageParticipant(stage_id=final_stage.id, participant_label=label, seed=seed)
        session.add(sp)
        placeholders[seed] = sp
    session.flush()

    matches = materialize_bracket(session, tournament, final_stage, placeholders)
    return list(placeholders.values()), matches


def single_stage_entrants(session: Session, tournament_id: int) -> List[Participant]:
    """Eligible participants ordered by explicit seed (unseeded last), then id."""
    participants = session.exec(
        select(Participant)
        .where(Participant.tournament_id == tournament_id, Participant.is_disqualified == False)  # noqa: E712
    ).all()
    return sorted(participants, key=lambda p: (p.seed is None, p.seed or 0, p.id))


def build_single_stage_bracket(session: Session, tournament_id: int) -> Tuple[List[StageParticipant], List[Match]]:
    """Knockout-only tournament: resolved Seed<n> placeholders plus the bracket."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    stage = get_final_stage(session, tournament_id)
    if stage.type != STAGE_SINGLE:
        raise ValidationFailed(f"Tournament {tournament_id} is not a single-stage tournament")
    _ensure_not_generated(session, stage)

    entrants = single_stage_entrants(session, tournament_id)
    if len(entrants) < 2:
        raise ValidationFailed(f"At least 2 participants are required, got {len(entrants)}")

    placeholders: Dict[int, StageParticipant] = {}
    for seed, participant in enumerate(entrants, start=1):
        sp = StageParticipant(
            stage_id=stage.id,
            participant_label=seed_label(seed),
            seed=seed,
            participant_id=participant.id,
        )
        session.add(sp)
        placeholders[seed] = sp
    session.flush()

    matches = materialize_bracket(session, tournament, stage, placeholders)
    tournament.state = STATE_IN_PROGRESS
    session.add(tournament)
    session.flush()
    return list(placeholders.values()), matches


# =============================================================================
# Confirmed knockout draft
# =============================================================================

DraftPair = Tuple[Optional[int], Optional[int]]


def _draft_first_round(rounds: Sequence[Sequence[DraftPair]]) -> List[DraftPair]:
    if not rounds or not rounds[0]:
        raise ValidationFailed("A knockout draft needs a non-empty first round")
    expected = len(rounds[0])
    for number, later in enumerate(rounds[1:], start=2):
        expected //= 2
        if expected == 0:
            raise ValidationFailed(f"The draft has more rounds than its first round allows (round {number})")
        if len(later) != expected:
            raise ValidationFailed(f"Round {number} of the draft needs {expected} matches, got {len(later)}")
        if any(p1 is not None or p2 is not None for p1, p2 in later):
            raise ValidationFailed(f"Round {number} of the draft can only hold winners of earlier matches")
    return [(p1, p2) for p1, p2 in rounds[0]]


def save_knockout_draft(
    session: Session,
    tournament_id: int,
    rounds: Sequence[Sequence[DraftPair]],
) -> Tuple[List[StageParticipant], List[Match]]:
    """
    Save an admin-confirmed knockout draft for a single-stage tournament.

    rounds[0] lists the first-round pairs as (player1_id, player2_id) with None
    for a bye side. Later rounds may be sent along; they must have the shape the
    first round implies and name nobody. Participants are seeded in draft order
    and the matches are wired like a generated bracket.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    stage = get_final_stage(session, tournament_id)
    if stage.type != STAGE_SINGLE:
        raise ValidationFailed(f"Tournament {tournament_id} is not a single-stage tournament")
    _ensure_not_generated(session, stage)

    ordered: List[int] = []
    slots: List[SlotSource] = []
    for number, (p1, p2) in enumerate(_draft_first_round(rounds), start=1):
        if p1 is None and p2 is None:
            raise ValidationFailed(f"Draft match {number} has no participants")
        for pid in (p1, p2):
            if pid is None:
                slots.append(Bye())
                continue
            if pid in ordered:
                raise ValidationFailed(f"Participant {pid} appears more than once in the draft")
            ordered.append(pid)
            slots.append(Seeded(len(ordered)))

    registered = {
        p.id: p
        for p in session.exec(
            select(Participant).where(Participant.tournament_id == tournament_id, col(Participant.id).in_(ordered))
        ).all()
    }
    for pid in ordered:
        participant = registered.get(pid)
        if participant is None:
            raise ValidationFailed(f"Participant {pid} is not registered in tournament {tournament_id}")
        if participant.is_disqualified:
            raise ValidationFailed(f"Participant {pid} is disqualified")

    skeleton = build_draft_skeleton(slots, tournament.bye_strategy)

    placeholders: Dict[int, StageParticipant] = {}
    for seed, pid in enumerate(ordered, start=1):
        sp = StageParticipant(stage_id=stage.id, participant_label=seed_label(seed), seed=seed, participant_id=pid)
        session.add(sp)
        placeholders[seed] = sp
    session.flush()

    matches = materialize_skeleton(session, tournament, stage, skeleton, placeholders)
    tournament.state = STATE_IN_PROGRESS
    session.add(tournament)
    session.flush()
    logger.info(
        "Knockout draft saved for tournament %s stage %s: participants=%s matches=%s strategy=%s",
        tournament_id, stage.id, len(ordered), len(matches), tournament.bye_strategy,
    )
    return list(placeholders.values()), matches


def stage_matches(session: Session, stage_id: int) -> List[Match]:
    return list(session.exec(
        select(Match).where(Match.stage_id == stage_id).order_by(Match.round_number, Match.sequence_in_round, Match.id)
    ).all())
