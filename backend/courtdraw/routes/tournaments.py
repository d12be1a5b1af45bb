from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from courtdraw.database import get_session
from courtdraw.models.placement import TournamentPlacement
from courtdraw.routes.errors import to_http, unit_of_work
from courtdraw.services import activity_log
from courtdraw.services.bracket_builder import build_single_stage_bracket, save_knockout_draft
from courtdraw.services.errors import CourtdrawError
from courtdraw.services.notifications import EVENT_MATCHES_GENERATED, EVENT_TOURNAMENT_UPDATED, safe_emit
from courtdraw.services.tournament_service import (
    TournamentSettings,
    create_tournament as create_tournament_service,
    get_tournament as get_tournament_service,
    list_stages,
)

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    category: Optional[str] = None
    tournament_format: str = "round_robin"
    participants_per_group: Optional[int] = None
    participants_advance: Optional[int] = None
    bracket_seeding: str = "seeded"
    bye_strategy: str = "direct"
    allow_withdrawal: bool = True
    is_rated: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TournamentResponse(BaseModel):
    id: int
    name: str
    category: Optional[str]
    tournament_format: str
    participants_per_group: Optional[int]
    participants_advance: Optional[int]
    bracket_seeding: str
    bye_strategy: str
    allow_withdrawal: bool
    is_rated: bool
    state: str
    first_place_participant_id: Optional[int] = None
    second_place_participant_id: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StageResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    type: str
    order_index: int
    is_current: bool
    state: str

    class Config:
        from_attributes = True


class PlacementResponse(BaseModel):
    participant_id: int
    placement: int

    class Config:
        from_attributes = True


class BracketResponse(BaseModel):
    stage_participants: int
    matches: int


class DraftMatch(BaseModel):
    player1_id: Optional[int] = None
    player2_id: Optional[int] = None


class KnockoutDraft(BaseModel):
    rounds: List[List[DraftMatch]]

    @field_validator("rounds")
    @classmethod
    def validate_rounds(cls, v):
        if not v or not v[0]:
            raise ValueError("the first round must list at least one match")
        return v


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a tournament together with its stages"""
    with unit_of_work(session):
        tournament = create_tournament_service(session, TournamentSettings(**data.model_dump()))
    session.refresh(tournament)
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_TOURNAMENT_CREATED,
        tournament_id=tournament.id,
        entity_type="tournament",
        entity_id=tournament.id,
        description=f"Tournament {tournament.name} created",
    )
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    try:
        return get_tournament_service(session, tournament_id)
    except CourtdrawError as e:
        raise to_http(e)


@router.get("/tournaments/{tournament_id}/stages", response_model=List[StageResponse])
def get_stages(tournament_id: int, session: Session = Depends(get_session)):
    try:
        get_tournament_service(session, tournament_id)
    except CourtdrawError as e:
        raise to_http(e)
    return list_stages(session, tournament_id)


@router.get("/tournaments/{tournament_id}/placements", response_model=List[PlacementResponse])
def get_placements(tournament_id: int, session: Session = Depends(get_session)):
    return session.exec(
        select(TournamentPlacement)
        .where(TournamentPlacement.tournament_id == tournament_id)
        .order_by(TournamentPlacement.placement)
    ).all()


@router.post("/tournaments/{tournament_id}/bracket", response_model=BracketResponse, status_code=201)
def generate_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """Build the knockout bracket of a single-stage tournament"""
    with unit_of_work(session):
        placeholders, matches = build_single_stage_bracket(session, tournament_id)
        response = BracketResponse(stage_participants=len(placeholders), matches=len(matches))

    safe_emit(EVENT_MATCHES_GENERATED, {"tournament_id": tournament_id})
    safe_emit(EVENT_TOURNAMENT_UPDATED, {"tournament_id": tournament_id})
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_BRACKET_GENERATED,
        tournament_id=tournament_id,
        entity_type="tournament",
        entity_id=tournament_id,
        description=f"Bracket generated: {response.matches} matches",
    )
    return response


@router.post("/tournaments/{tournament_id}/bracket/draft", response_model=BracketResponse, status_code=201)
def save_bracket_draft(tournament_id: int, data: KnockoutDraft, session: Session = Depends(get_session)):
    """Save an admin-confirmed knockout draft of a single-stage tournament"""
    rounds = [[(m.player1_id, m.player2_id) for m in matches] for matches in data.rounds]
    with unit_of_work(session):
        placeholders, matches = save_knockout_draft(session, tournament_id, rounds)
        response = BracketResponse(stage_participants=len(placeholders), matches=len(matches))

    safe_emit(EVENT_MATCHES_GENERATED, {"tournament_id": tournament_id})
    safe_emit(EVENT_TOURNAMENT_UPDATED, {"tournament_id": tournament_id})
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_BRACKET_GENERATED,
        tournament_id=tournament_id,
        entity_type="tournament",
        entity_id=tournament_id,
        description=f"Knockout draft saved: {response.matches} matches",
    )
    return response


class ActivityResponse(BaseModel):
    id: int
    actor: Optional[str]
    action_type: str
    entity_type: Optional[str]
    entity_id: Optional[int]
    description: Optional[str]
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/tournaments/{tournament_id}/activity", response_model=List[ActivityResponse])
def get_activity(tournament_id: int, session: Session = Depends(get_session)):
    """Audit trail of a tournament, oldest first"""
    try:
        get_tournament_service(session, tournament_id)
    except CourtdrawError as e:
        raise to_http(e)
    return activity_log.list_activity(session, tournament_id)
