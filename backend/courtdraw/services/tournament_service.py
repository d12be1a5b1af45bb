"""
Tournament setup and stage lookups.

Stages are created once, together with the tournament, and never re-ordered:
  round_robin -> Group Stage (round_robin, order 0, current) + Final Stage (elimination, order 1)
  single      -> Final Stage (single, order 0, current)
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlmodel import Session, select

from courtdraw.models.stage import (
    FINAL_STAGE_NAME,
    GROUP_STAGE_NAME,
    STAGE_ELIMINATION,
    STAGE_ROUND_ROBIN,
    STAGE_SINGLE,
    Stage,
)
from courtdraw.models.tournament import Tournament
from courtdraw.services.bracket_rules import BYE_STRATEGIES, BYE_DIRECT
from courtdraw.services.errors import ConsistencyError, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

FORMAT_ROUND_ROBIN = "round_robin"
FORMAT_SINGLE = "single"
TOURNAMENT_FORMATS = (FORMAT_ROUND_ROBIN, FORMAT_SINGLE)

BRACKET_SEEDING_SEEDED = "seeded"
BRACKET_SEEDING_GROUP_RANK = "group_rank"
BRACKET_SEEDINGS = (BRACKET_SEEDING_SEEDED, BRACKET_SEEDING_GROUP_RANK)

STATE_PENDING = "pending"
STATE_IN_PROGRESS = "in_progress"
STATE_COMPLETED = "completed"


@dataclass
class TournamentSettings:
    name: str
    category: Optional[str] = None
    tournament_format: str = FORMAT_ROUND_ROBIN
    participants_per_group: Optional[int] = None
    participants_advance: Optional[int] = None
    bracket_seeding: str = BRACKET_SEEDING_SEEDED
    bye_strategy: str = BYE_DIRECT
    allow_withdrawal: bool = True
    is_rated: bool = True


def validate_settings(settings: TournamentSettings) -> None:
    if not settings.name or not settings.name.strip():
        raise ValidationFailed("Tournament name is required")
    if settings.tournament_format not in TOURNAMENT_FORMATS:
        raise ValidationFailed(f"Unknown tournament format: {settings.tournament_format}")
    if settings.bracket_seeding not in BRACKET_SEEDINGS:
        raise ValidationFailed(f"Unknown bracket seeding: {settings.bracket_seeding}")
    if settings.bye_strategy not in BYE_STRATEGIES:
        raise ValidationFailed(f"Unknown bye strategy: {settings.bye_strategy}")
    if settings.tournament_format == FORMAT_ROUND_ROBIN:
        if not settings.participants_advance or settings.participants_advance <= 0:
            raise ValidationFailed("participants_advance must be a positive number for round-robin tournaments")
        if settings.participants_per_group is not None and settings.participants_per_group < 2:
            raise ValidationFailed("participants_per_group must be at least 2")


def create_tournament(session: Session, settings: TournamentSettings) -> Tournament:
    """Create a tournament and its stages. Flushes, does not commit."""
    validate_settings(settings)

    tournament = Tournament(
        name=settings.name.strip(),
        category=settings.category,
        tournament_format=settings.tournament_format,
        participants_per_group=settings.participants_per_group,
        participants_advance=settings.participants_advance,
        bracket_seeding=settings.bracket_seeding,
        bye_strategy=settings.bye_strategy,
        allow_withdrawal=settings.allow_withdrawal,
        is_rated=settings.is_rated,
        state=STATE_PENDING,
    )
    session.add(tournament)
    session.flush()

    if settings.tournament_format == FORMAT_ROUND_ROBIN:
        stages = [
            Stage(tournament_id=tournament.id, name=GROUP_STAGE_NAME, type=STAGE_ROUND_ROBIN, order_index=0, is_current=True),
            Stage(tournament_id=tournament.id, name=FINAL_STAGE_NAME, type=STAGE_ELIMINATION, order_index=1),
        ]
    else:
        stages = [
            Stage(tournament_id=tournament.id, name=FINAL_STAGE_NAME, type=STAGE_SINGLE, order_index=0, is_current=True),
        ]
    for stage in stages:
        session.add(stage)
    session.flush()

    logger.info(
        "Created tournament %s (%s) with stages %s",
        tournament.id, tournament.tournament_format, [s.name for s in stages],
    )
    return tournament


def get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    return tournament


def list_stages(session: Session, tournament_id: int) -> List[Stage]:
    return list(session.exec(
        select(Stage).where(Stage.tournament_id == tournament_id).order_by(Stage.order_index)
    ).all())


def get_final_stage(session: Session, tournament_id: int) -> Stage:
    stage = session.exec(
        select(Stage).where(Stage.tournament_id == tournament_id, Stage.name == FINAL_STAGE_NAME)
    ).first()
    if not stage:
        logger.error("Final Stage not found for tournament %s", tournament_id)
        raise ConsistencyError(f"Final Stage not found for tournament {tournament_id}")
    return stage


def get_group_stage(session: Session, tournament_id: int) -> Stage:
    stage = session.exec(
        select(Stage).where(Stage.tournament_id == tournament_id, Stage.type == STAGE_ROUND_ROBIN)
    ).first()
    if not stage:
        logger.error("Group Stage not found for tournament %s", tournament_id)
        raise ConsistencyError(f"Group Stage not found for tournament {tournament_id}")
    return stage


def get_current_stage(session: Session, tournament_id: int) -> Stage:
    current = session.exec(
        select(Stage).where(Stage.tournament_id == tournament_id, Stage.is_current == True)  # noqa: E712
    ).all()
    if len(current) != 1:
        logger.error("Tournament %s has %s current stages", tournament_id, len(current))
        raise ConsistencyError(f"Tournament {tournament_id} must have exactly one current stage, found {len(current)}")
    return current[0]
