"""
Match results. PATCH completes a match; the progression engine advances
winners, closes groups and stages, rates players and records placements.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from courtdraw.database import get_session
from courtdraw.models.match import Match
from courtdraw.models.stage import Stage
from courtdraw.routes.errors import to_http, unit_of_work
from courtdraw.services import activity_log
from courtdraw.services.advancement_service import complete_match, resolve_all_dependencies
from courtdraw.services.bracket_builder import Awaiting, MatchSlot, Placeholder, Resolved, match_slots, stage_matches
from courtdraw.services.errors import CourtdrawError

router = APIRouter()


class SlotState(BaseModel):
    kind: str  # resolved | placeholder | awaiting | empty
    participant_id: Optional[int] = None
    stage_participant_id: Optional[int] = None
    match_id: Optional[int] = None


class MatchState(BaseModel):
    id: int
    tournament_id: int
    stage_id: int
    group_id: Optional[int]
    round_number: int
    round_name: Optional[str]
    sequence_in_round: int
    identifier: Optional[str]
    state: str
    player1_id: Optional[int]
    player2_id: Optional[int]
    scores_csv: Optional[str]
    winner_id: Optional[int]
    is_bye: bool
    is_final: bool
    completed_at: Optional[datetime] = None
    slot1: SlotState
    slot2: SlotState


class MatchResultUpdate(BaseModel):
    scores_csv: str
    winner_id: Optional[int] = None
    actor: Optional[str] = None


class MatchResultResponse(BaseModel):
    match: MatchState
    changed: bool
    advanced_count: int = 0
    rating_changes: int = 0
    group_completed: bool = False
    stage_completed: bool = False
    tournament_completed: bool = False


class ResolveDependenciesResponse(BaseModel):
    matches_processed: int
    teams_advanced: int
    unknown_before: int
    unknown_after: int


def _slot_state(source: MatchSlot) -> SlotState:
    if isinstance(source, Resolved):
        return SlotState(kind="resolved", participant_id=source.participant_id, stage_participant_id=source.stage_participant_id)
    if isinstance(source, Placeholder):
        return SlotState(kind="placeholder", stage_participant_id=source.stage_participant_id)
    if isinstance(source, Awaiting):
        return SlotState(kind="awaiting", match_id=source.match_id)
    return SlotState(kind="empty")


def _match_state(m: Match) -> MatchState:
    slot1, slot2 = match_slots(m)
    return MatchState(
        id=m.id,
        tournament_id=m.tournament_id,
        stage_id=m.stage_id,
        group_id=m.group_id,
        round_number=m.round_number,
        round_name=m.round_name,
        sequence_in_round=m.sequence_in_round,
        identifier=m.identifier,
        state=m.state,
        player1_id=m.player1_id,
        player2_id=m.player2_id,
        scores_csv=m.scores_csv,
        winner_id=m.winner_id,
        is_bye=m.is_bye,
        is_final=m.is_final,
        completed_at=m.completed_at,
        slot1=_slot_state(slot1),
        slot2=_slot_state(slot2),
    )


@router.get("/stages/{stage_id}/matches", response_model=List[MatchState])
def list_stage_matches(stage_id: int, session: Session = Depends(get_session)):
    if not session.get(Stage, stage_id):
        raise HTTPException(status_code=404, detail=f"Stage {stage_id} not found")
    return [_match_state(m) for m in stage_matches(session, stage_id)]


@router.patch("/matches/{match_id}", response_model=MatchResultResponse)
def update_match_result(match_id: int, data: MatchResultUpdate, session: Session = Depends(get_session)):
    """Record a result. Replaying the stored result is a no-op."""
    try:
        result = complete_match(
            session,
            match_id,
            scores_csv=data.scores_csv,
            winner_id=data.winner_id,
            actor=data.actor,
        )
    except CourtdrawError as e:
        raise to_http(e)

    match = session.get(Match, match_id)
    return MatchResultResponse(
        match=_match_state(match),
        changed=result.changed,
        advanced_count=result.advanced_count,
        rating_changes=result.rating_changes,
        group_completed=result.group_completed,
        stage_completed=result.stage_completed,
        tournament_completed=result.tournament_completed,
    )


@router.post("/stages/{stage_id}/resolve-dependencies", response_model=ResolveDependenciesResponse)
def resolve_dependencies(stage_id: int, session: Session = Depends(get_session)):
    """Re-apply advancement for every completed match of the stage. Idempotent."""
    with unit_of_work(session):
        counts = resolve_all_dependencies(session, stage_id)
        tournament_id = session.get(Stage, stage_id).tournament_id

    activity_log.record_activity(
        session.get_bind(),
        activity_log.ACTION_DEPENDENCIES_RESOLVED,
        tournament_id=tournament_id,
        entity_type="stage",
        entity_id=stage_id,
        description=f"Dependencies resolved: {counts['teams_advanced']} slots advanced",
    )
    return ResolveDependenciesResponse(**counts)
