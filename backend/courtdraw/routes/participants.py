from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, model_validator
from sqlmodel import Session, select

from courtdraw.database import get_session
from courtdraw.models.participant import Participant
from courtdraw.routes.errors import unit_of_work
from courtdraw.services import activity_log
from courtdraw.services.notifications import EVENT_PARTICIPANT_DISQUALIFIED, EVENT_TOURNAMENT_UPDATED, safe_emit
from courtdraw.services.participant_service import (
    disqualify_participant as disqualify_participant_service,
    register_participant,
    withdraw_participant,
)

router = APIRouter()


class ParticipantCreate(BaseModel):
    name: str
    user1_id: Optional[int] = None
    user2_id: Optional[int] = None
    comment: Optional[str] = None
    seed: Optional[int] = None

    @model_validator(mode="after")
    def validate_slots(self):
        if self.user1_id is None and self.user2_id is not None:
            self.user1_id, self.user2_id = self.user2_id, None
        return self


class ParticipantResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    user1_id: Optional[int]
    user2_id: Optional[int]
    comment: Optional[str]
    is_disqualified: bool
    seed: Optional[int]

    class Config:
        from_attributes = True


@router.get("/tournaments/{tournament_id}/participants", response_model=List[ParticipantResponse])
def list_participants(tournament_id: int, session: Session = Depends(get_session)):
    return session.exec(
        select(Participant).where(Participant.tournament_id == tournament_id).order_by(Participant.id)
    ).all()


@router.post("/tournaments/{tournament_id}/participants", response_model=ParticipantResponse, status_code=201)
def create_participant(tournament_id: int, data: ParticipantCreate, session: Session = Depends(get_session)):
    """Register a single player or a two-player team"""
    with unit_of_work(session):
        participant = register_participant(session, tournament_id, **data.model_dump())
    session.refresh(participant)
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_PARTICIPANT_REGISTERED,
        tournament_id=tournament_id,
        entity_type="participant",
        entity_id=participant.id,
        description=f"Participant {participant.name} registered",
    )
    return participant


@router.post("/participants/{participant_id}/disqualify", response_model=ParticipantResponse)
def disqualify_participant(participant_id: int, session: Session = Depends(get_session)):
    """Disqualify permanently. The participant and its results are kept."""
    with unit_of_work(session):
        participant, changed = disqualify_participant_service(session, participant_id)
    session.refresh(participant)
    if changed:
        payload = {"tournament_id": participant.tournament_id, "participant_id": participant.id}
        safe_emit(EVENT_PARTICIPANT_DISQUALIFIED, payload)
        safe_emit(EVENT_TOURNAMENT_UPDATED, {"tournament_id": participant.tournament_id})
        activity_log.record_activity(
            session.get_bind(),
            activity_log.ACTION_PARTICIPANT_DISQUALIFIED,
            tournament_id=participant.tournament_id,
            entity_type="participant",
            entity_id=participant.id,
            description=f"Participant {participant.name} disqualified",
        )
    return participant


@router.delete("/participants/{participant_id}", status_code=204)
def delete_participant(participant_id: int, session: Session = Depends(get_session)):
    """Withdraw before the final stage is generated"""
    with unit_of_work(session):
        tournament_id = withdraw_participant(session, participant_id)
    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_PARTICIPANT_WITHDRAWN,
        tournament_id=tournament_id,
        entity_type="participant",
        entity_id=participant_id,
        description=f"Participant {participant_id} withdrew",
    )
    return Response(status_code=204)
