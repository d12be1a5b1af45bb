"""
Participant registration, disqualification and withdrawal.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import delete, func, or_
from sqlmodel import Session, col, select

from courtdraw.models.group import GroupParticipant
from courtdraw.models.participant import Participant
from courtdraw.models.stage import Stage
from courtdraw.models.stage_participant import StageParticipant
from courtdraw.models.user import User
from courtdraw.services.errors import NotFound, ValidationFailed
from courtdraw.services.tournament_service import get_tournament

logger = logging.getLogger(__name__)


def stage_participants_exist(session: Session, tournament_id: int) -> bool:
    count = session.exec(
        select(func.count())
        .select_from(StageParticipant)
        .join(Stage, Stage.id == StageParticipant.stage_id)
        .where(Stage.tournament_id == tournament_id)
    ).one()
    return count > 0


def register_participant(
    session: Session,
    tournament_id: int,
    name: str,
    user1_id: Optional[int] = None,
    user2_id: Optional[int] = None,
    comment: Optional[str] = None,
    seed: Optional[int] = None,
) -> Participant:
    """Register a single player or a team of two. Flushes, does not commit."""
    get_tournament(session, tournament_id)

    if not name or not name.strip():
        raise ValidationFailed("Participant name is required")
    if user1_id is not None and user1_id == user2_id:
        raise ValidationFailed("The same user cannot fill both team slots")
    if seed is not None and seed < 1:
        raise ValidationFailed("seed must be a positive number")

    user_ids = [uid for uid in (user1_id, user2_id) if uid is not None]
    for uid in user_ids:
        if not session.get(User, uid):
            raise NotFound(f"User {uid} not found")

    if user_ids:
        duplicate = session.exec(
            select(Participant).where(
                Participant.tournament_id == tournament_id,
                or_(col(Participant.user1_id).in_(user_ids), col(Participant.user2_id).in_(user_ids)),
            )
        ).first()
        if duplicate:
            raise ValidationFailed(
                f"A user is already registered in tournament {tournament_id} (participant {duplicate.id})"
            )

    if stage_participants_exist(session, tournament_id):
        raise ValidationFailed("Registration is closed: the final stage has already been generated")

    participant = Participant(
        tournament_id=tournament_id,
        name=name.strip(),
        user1_id=user1_id,
        user2_id=user2_id,
        comment=comment,
        seed=seed,
    )
    session.add(participant)
    session.flush()
    logger.info("Registered participant %s in tournament %s", participant.id, tournament_id)
    return participant


def get_participant(session: Session, participant_id: int) -> Participant:
    participant = session.get(Participant, participant_id)
    if not participant:
        raise NotFound(f"Participant {participant_id} not found")
    return participant


def disqualify_participant(session: Session, participant_id: int) -> Tuple[Participant, bool]:
    """
    Set the disqualified flag. Permanent: the participant is never deleted and
    keeps its results. Returns (participant, changed).
    """
    participant = get_participant(session, participant_id)
    if participant.is_disqualified:
        return participant, False
    participant.is_disqualified = True
    session.add(participant)
    session.flush()
    logger.info("Disqualified participant %s in tournament %s", participant.id, participant.tournament_id)
    return participant, True


def withdraw_participant(session: Session, participant_id: int) -> int:
    """Delete a participant before the final stage exists. Returns the tournament id."""
    participant = get_participant(session, participant_id)
    tournament = get_tournament(session, participant.tournament_id)

    if not tournament.allow_withdrawal:
        raise ValidationFailed(f"Tournament {tournament.id} does not allow withdrawal")
    if participant.is_disqualified:
        raise ValidationFailed("Disqualified participants are kept for bracket integrity")
    if stage_participants_exist(session, tournament.id):
        raise ValidationFailed("Withdrawal is closed: the final stage has already been generated")

    session.execute(delete(GroupParticipant).where(GroupParticipant.participant_id == participant.id))
    session.delete(participant)
    session.flush()
    logger.info("Withdrew participant %s from tournament %s", participant_id, tournament.id)
    return tournament.id
