"""
Group stage setup: groups, memberships and round-robin matches.

generate_group_matches() also creates the Final-Stage placeholders and bracket
in the same unit of work, so a tournament never has group matches without a
bracket to feed.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from sqlalchemy import func
from sqlmodel import Session, select

from courtdraw.models.group import Group, GroupParticipant
from courtdraw.models.match import Match
from courtdraw.models.participant import Participant
from courtdraw.models.stage_participant import StageParticipant
from courtdraw.services.bracket_builder import generate_final_stage_placeholders
from courtdraw.services.bracket_rules import group_letter
from courtdraw.services.errors import ConsistencyError, ValidationFailed
from courtdraw.services.standings import load_group_members
from courtdraw.services.tournament_service import (
    FORMAT_ROUND_ROBIN,
    STATE_IN_PROGRESS,
    get_group_stage,
    get_tournament,
)
from courtdraw.utils.round_robin import generate_round_robin

logger = logging.getLogger(__name__)


def group_name(group_index: int) -> str:
    return f"Group {group_letter(group_index)}"


def create_groups_with_participants(session: Session, tournament_id: int, groups: Sequence[Sequence[int]]) -> List[Group]:
    """
    Create groups A, B, ... in the round-robin stage, one per entry of
    `groups` (a list of participant ids). Flushes, does not commit.
    """
    tournament = get_tournament(session, tournament_id)
    if tournament.tournament_format != FORMAT_ROUND_ROBIN:
        raise ValidationFailed(f"Tournament {tournament_id} has no group stage")
    if not groups:
        raise ValidationFailed("At least one group is required")

    stage = get_group_stage(session, tournament_id)
    existing = session.exec(
        select(func.count()).select_from(Group).where(Group.stage_id == stage.id)
    ).one()
    if existing:
        raise ValidationFailed(f"Groups already exist for tournament {tournament_id}")

    seen: Dict[int, int] = {}
    for index, member_ids in enumerate(groups):
        if len(member_ids) < 2:
            raise ValidationFailed(f"{group_name(index)} needs at least 2 participants")
        if tournament.participants_per_group and len(member_ids) > tournament.participants_per_group:
            raise ValidationFailed(
                f"{group_name(index)} has {len(member_ids)} participants, limit is {tournament.participants_per_group}"
            )
        for pid in member_ids:
            if pid in seen:
                raise ValidationFailed(f"Participant {pid} is in both {group_name(seen[pid])} and {group_name(index)}")
            seen[pid] = index
            participant = session.get(Participant, pid)
            if not participant or participant.tournament_id != tournament_id:
                raise ValidationFailed(f"Participant {pid} is not registered in tournament {tournament_id}")

    created: List[Group] = []
    for index, member_ids in enumerate(groups):
        group = Group(
            tournament_id=tournament_id,
            stage_id=stage.id,
            name=group_name(index),
            group_index=index,
        )
        session.add(group)
        session.flush()
        for pid in member_ids:
            session.add(GroupParticipant(group_id=group.id, participant_id=pid))
        created.append(group)
    session.flush()

    logger.info("Created %s groups for tournament %s stage %s", len(created), tournament_id, stage.id)
    return created


@dataclass
class GeneratedMatches:
    group_matches: List[Match] = field(default_factory=list)
    stage_participants: List[StageParticipant] = field(default_factory=list)
    bracket_matches: List[Match] = field(default_factory=list)


def generate_group_matches(session: Session, tournament_id: int) -> GeneratedMatches:
    """Round-robin matches for every group, then the Final-Stage skeleton."""
    tournament = get_tournament(session, tournament_id)
    stage = get_group_stage(session, tournament_id)

    existing = session.exec(
        select(func.count()).select_from(Match).where(Match.stage_id == stage.id)
    ).one()
    if existing:
        logger.error("Group matches already exist for tournament %s stage %s", tournament_id, stage.id)
        raise ConsistencyError(f"Matches already generated for tournament {tournament_id}")

    groups = session.exec(
        select(Group).where(Group.stage_id == stage.id).order_by(Group.group_index)
    ).all()
    if not groups:
        logger.error("No groups found for tournament %s stage %s", tournament_id, stage.id)
        raise ConsistencyError(f"No groups found for tournament {tournament_id}")

    result = GeneratedMatches()
    for group in groups:
        members = load_group_members(session, group.id)
        names = {p.id: p.name for p in members}
        sequence: Dict[int, int] = {}
        for round_number, p1, p2 in generate_round_robin([p.id for p in members]):
            sequence[round_number] = sequence.get(round_number, 0) + 1
            match = Match(
                tournament_id=tournament_id,
                stage_id=stage.id,
                group_id=group.id,
                round_number=round_number,
                round_name=f"Round {round_number}",
                sequence_in_round=sequence[round_number],
                identifier=f"{names[p1]} vs {names[p2]} ({group.name})",
                player1_id=p1,
                player2_id=p2,
            )
            session.add(match)
            result.group_matches.append(match)
    session.flush()

    result.stage_participants, result.bracket_matches = generate_final_stage_placeholders(session, tournament_id)

    tournament.state = STATE_IN_PROGRESS
    session.add(tournament)
    session.flush()

    logger.info(
        "Generated %s group matches and %s bracket matches for tournament %s",
        len(result.group_matches), len(result.bracket_matches), tournament_id,
    )
    return result


def list_groups(session: Session, tournament_id: int) -> List[Group]:
    return list(session.exec(
        select(Group).where(Group.tournament_id == tournament_id).order_by(Group.group_index)
    ).all())
