from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session

from courtdraw.database import get_session
from courtdraw.routes.errors import to_http, unit_of_work
from courtdraw.services import activity_log
from courtdraw.services.errors import CourtdrawError
from courtdraw.services.group_service import (
    create_groups_with_participants,
    generate_group_matches,
    list_groups,
)
from courtdraw.services.notifications import EVENT_GROUPS_UPDATED, EVENT_MATCHES_GENERATED, safe_emit
from courtdraw.services.standings import get_group_standings
from courtdraw.services.tournament_service import get_tournament

router = APIRouter()


class GroupsCreate(BaseModel):
    groups: List[List[int]]

    @field_validator("groups")
    @classmethod
    def validate_groups(cls, v):
        if not v:
            raise ValueError("at least one group is required")
        return v


class GroupResponse(BaseModel):
    id: int
    name: str
    group_index: int
    state: str

    class Config:
        from_attributes = True


class GroupMatchesResponse(BaseModel):
    group_matches: int
    stage_participants: int
    bracket_matches: int


class StandingResponse(BaseModel):
    participant_id: int
    name: str
    rank: int
    wins: int
    losses: int
    ties: int
    differential: int
    points: int
    history: List[str]
    is_disqualified: bool


class GroupStandingsResponse(BaseModel):
    group_id: int
    name: str
    state: str
    standings: List[StandingResponse]


@router.post("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse], status_code=201)
def create_groups(tournament_id: int, data: GroupsCreate, session: Session = Depends(get_session)):
    """Create groups A, B, ... from lists of participant ids"""
    with unit_of_work(session):
        groups = create_groups_with_participants(session, tournament_id, data.groups)
        response = [GroupResponse.model_validate(g) for g in groups]

    safe_emit(EVENT_GROUPS_UPDATED, {"tournament_id": tournament_id})
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_GROUPS_CREATED,
        tournament_id=tournament_id,
        entity_type="tournament",
        entity_id=tournament_id,
        description=f"{len(response)} groups created",
    )
    return response


@router.post("/tournaments/{tournament_id}/group-matches", response_model=GroupMatchesResponse, status_code=201)
def create_group_matches(tournament_id: int, session: Session = Depends(get_session)):
    """Generate round-robin matches plus the Final-Stage bracket skeleton"""
    with unit_of_work(session):
        generated = generate_group_matches(session, tournament_id)
        response = GroupMatchesResponse(
            group_matches=len(generated.group_matches),
            stage_participants=len(generated.stage_participants),
            bracket_matches=len(generated.bracket_matches),
        )

    safe_emit(EVENT_MATCHES_GENERATED, {"tournament_id": tournament_id})
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_MATCHES_GENERATED,
        tournament_id=tournament_id,
        entity_type="tournament",
        entity_id=tournament_id,
        description=(
            f"{response.group_matches} group matches and {response.bracket_matches} bracket matches generated"
        ),
    )
    return response


@router.get("/tournaments/{tournament_id}/standings", response_model=List[GroupStandingsResponse])
def get_standings(tournament_id: int, session: Session = Depends(get_session)):
    try:
        get_tournament(session, tournament_id)
        groups = get_group_standings(session, tournament_id)
    except CourtdrawError as e:
        raise to_http(e)
    return [
        GroupStandingsResponse(
            group_id=group.id,
            name=group.name,
            state=group.state,
            standings=[StandingResponse(**row.to_dict()) for row in rows],
        )
        for group, rows in groups
    ]


@router.get("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse])
def get_groups(tournament_id: int, session: Session = Depends(get_session)):
    try:
        get_tournament(session, tournament_id)
    except CourtdrawError as e:
        raise to_http(e)
    return list_groups(session, tournament_id)
