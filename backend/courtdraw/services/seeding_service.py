"""
Seeding: turn group standings into bound Final-Stage placeholders.

Two label schemes:
- group_rank: "A1", "B2", ... bound as soon as that group completes.
- seeded: "Seed1".."SeedN" bound once every group is complete. All rank-1
  finishers are ordered together and take seeds 1..k, then all rank-2
  finishers take k+1..2k, and so on.

Disqualified participants keep their standings rows but are skipped when
picking qualifiers; the next eligible finisher moves up.

Placeholders are bound exactly once. Rebinding to the same participant is a
no-op; rebinding to a different one raises PlaceholderConflict.
"""
import logging
from typing import Dict, List, Sequence, Tuple

from sqlmodel import Session, select

from courtdraw.models.group import Group
from courtdraw.models.participant import Participant
from courtdraw.models.stage_participant import StageParticipant
from courtdraw.services.bracket_rules import group_letter
from courtdraw.services.errors import ConsistencyError, PlaceholderConflict
from courtdraw.services.standings import StandingRow, compute_group_standings, sort_rows
from courtdraw.services.tournament_service import get_final_stage, get_group_stage, get_tournament

logger = logging.getLogger(__name__)

GROUP_COMPLETED = "completed"


def group_qualifiers(standings: Sequence[StandingRow], advance: int) -> List[StandingRow]:
    """Top `advance` eligible finishers of one group, in rank order."""
    return [row for row in standings if not row.is_disqualified][:advance]


def seed_order(standings_by_group: Sequence[Sequence[StandingRow]], advance: int) -> List[StandingRow]:
    """
    Global seed order across groups: rank tier by rank tier, each tier sorted by
    wins, differential, points, then participant id.
    """
    qualifiers = [group_qualifiers(rows, advance) for rows in standings_by_group]
    ordered: List[StandingRow] = []
    for tier in range(advance):
        finishers = [q[tier] for q in qualifiers if len(q) > tier]
        ordered.extend(sort_rows(finishers))
    return ordered


def resolve_placeholder(session: Session, placeholder: StageParticipant, participant_id: int) -> bool:
    """Bind a placeholder to a participant. Returns True when it changed."""
    if placeholder.participant_id == participant_id:
        return False
    if placeholder.participant_id is not None:
        stage_id = placeholder.stage_id
        logger.error(
            "Placeholder %s (stage %s, label %s) already bound to participant %s; refusing %s",
            placeholder.id, stage_id, placeholder.participant_label, placeholder.participant_id, participant_id,
        )
        raise PlaceholderConflict(
            f"Placeholder {placeholder.participant_label} in stage {stage_id} is already bound to "
            f"participant {placeholder.participant_id}"
        )
    placeholder.participant_id = participant_id
    session.add(placeholder)
    return True


def _placeholders_by_label(session: Session, stage_id: int) -> Dict[str, StageParticipant]:
    rows = session.exec(
        select(StageParticipant)
        .where(StageParticipant.stage_id == stage_id)
        .with_for_update()
    ).all()
    return {sp.participant_label: sp for sp in rows}


def resolve_group_rank_placeholders(session: Session, tournament_id: int, group: Group) -> List[StageParticipant]:
    """Bind "<letter><rank>" placeholders for one completed group."""
    tournament = get_tournament(session, tournament_id)
    final_stage = get_final_stage(session, tournament_id)
    advance = tournament.participants_advance or 0

    standings = compute_group_standings(session, group.id)
    qualifiers = group_qualifiers(standings, advance)
    by_label = _placeholders_by_label(session, final_stage.id)

    letter = group_letter(group.group_index)
    resolved: List[StageParticipant] = []
    for rank, row in enumerate(qualifiers, start=1):
        label = f"{letter}{rank}"
        placeholder = by_label.get(label)
        if placeholder is None:
            logger.error("Placeholder %s missing for tournament %s stage %s", label, tournament_id, final_stage.id)
            raise ConsistencyError(f"Placeholder {label} not found in Final Stage of tournament {tournament_id}")
        if resolve_placeholder(session, placeholder, row.participant_id):
            resolved.append(placeholder)
    session.flush()

    logger.info(
        "Resolved %s placeholders for %s of tournament %s",
        len(resolved), group.name, tournament_id,
    )
    return resolved


def compute_and_apply_seeds(session: Session, tournament_id: int) -> List[Tuple[int, int]]:
    """
    Compute global seeds from completed groups, write Participant.seed and bind
    Seed<n> placeholders. Returns [(seed, participant_id), ...].
    """
    tournament = get_tournament(session, tournament_id)
    group_stage = get_group_stage(session, tournament_id)
    final_stage = get_final_stage(session, tournament_id)
    advance = tournament.participants_advance or 0

    placeholders = session.exec(
        select(StageParticipant)
        .where(StageParticipant.stage_id == final_stage.id)
        .order_by(StageParticipant.seed)
        .with_for_update()
    ).all()
    if not placeholders:
        logger.error("No placeholders for tournament %s stage %s", tournament_id, final_stage.id)
        raise ConsistencyError(f"Final Stage placeholders have not been generated for tournament {tournament_id}")

    groups = session.exec(
        select(Group).where(Group.stage_id == group_stage.id).order_by(Group.group_index)
    ).all()
    if not groups:
        logger.error("No groups found for tournament %s stage %s", tournament_id, group_stage.id)
        raise ConsistencyError(f"No groups found for tournament {tournament_id}")
    pending = [g.name for g in groups if g.state != GROUP_COMPLETED]
    if pending:
        raise ConsistencyError(f"Groups not completed: {', '.join(pending)}")

    ordered = seed_order([compute_group_standings(session, g.id) for g in groups], advance)
    if len(ordered) < len(placeholders):
        logger.error(
            "Only %s eligible qualifiers for %s placeholders (tournament %s stage %s)",
            len(ordered), len(placeholders), tournament_id, final_stage.id,
        )
        raise ConsistencyError(
            f"Unresolved placeholder during seeding: {len(placeholders)} slots, {len(ordered)} eligible qualifiers"
        )

    assignments: List[Tuple[int, int]] = []
    for placeholder, row in zip(placeholders, ordered):
        seed = placeholder.seed
        participant = session.get(Participant, row.participant_id)
        participant.seed = seed
        session.add(participant)
        resolve_placeholder(session, placeholder, row.participant_id)
        assignments.append((seed, row.participant_id))
    session.flush()

    logger.info("Applied %s seeds for tournament %s stage %s", len(assignments), tournament_id, final_stage.id)
    return assignments
