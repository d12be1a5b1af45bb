"""
Progression Engine: apply a match result and everything that follows from it.

complete_match() is the only entry point that commits. Inside one unit of work:
  1. score, winner and state are written to the match
  2. rated matches update player ratings (a RatingError rolls everything back)
  3. group matches: group completion -> placeholders -> group stage completion
  4. elimination matches: single-hop advancement of the winner into the match
     that names this one as a prerequisite; the Final records placements and
     completes the tournament
Notifications and the audit row are emitted after commit and never fail the call.

Advancement is single-hop: a downstream match only advances once its own result
is entered. The exception is a bye match, which completes as soon as its one
real side arrives.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from courtdraw.models.group import Group
from courtdraw.models.match import STATE_COMPLETED, STATE_PENDING, Match
from courtdraw.models.placement import TournamentPlacement
from courtdraw.models.stage import Stage
from courtdraw.models.stage_participant import StageParticipant
from courtdraw.models.tournament import Tournament
from courtdraw.services import activity_log
from courtdraw.services.errors import ConsistencyError, CourtdrawError, NotFound, ValidationFailed
from courtdraw.services.notifications import (
    EVENT_GROUPS_UPDATED,
    EVENT_MATCH_UPDATED,
    EVENT_MATCHES_GENERATED,
    EVENT_PLACEMENTS_UPDATED,
    EVENT_TOURNAMENT_UPDATED,
    Notifier,
    safe_emit,
)
from courtdraw.services.rating_engine import RatingConfig, apply_match_rating
from courtdraw.services.score_parser import SIDE_PLAYER1, SIDE_PLAYER2, parse_scores_csv
from courtdraw.services.seeding_service import compute_and_apply_seeds, resolve_group_rank_placeholders
from courtdraw.services.tournament_service import (
    BRACKET_SEEDING_GROUP_RANK,
    BRACKET_SEEDING_SEEDED,
    STATE_COMPLETED as TOURNAMENT_COMPLETED,
    STATE_IN_PROGRESS,
    STATE_PENDING as TOURNAMENT_PENDING,
    get_final_stage,
    get_group_stage,
)

logger = logging.getLogger(__name__)

PLACEMENT_CHAMPION = 1
PLACEMENT_RUNNER_UP = 2


@dataclass
class CompletionResult:
    match_id: int
    tournament_id: int
    changed: bool = True           # False when the call replayed a stored result
    winner_id: Optional[int] = None
    scores_csv: Optional[str] = None
    advanced_count: int = 0
    rating_changes: int = 0
    group_completed: bool = False
    stage_completed: bool = False
    tournament_completed: bool = False
    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)


# =============================================================================
# Loading
# =============================================================================

def _lock_match(session: Session, match_id: int) -> Match:
    match = session.exec(
        select(Match)
        .where(Match.id == match_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if not match:
        raise NotFound(f"Match {match_id} not found")
    return match


def _lock_stage(session: Session, stage_id: int) -> Stage:
    return session.exec(
        select(Stage)
        .where(Stage.id == stage_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).one()


def _side_of(match: Match, participant_id: Optional[int]) -> Optional[int]:
    if participant_id is None:
        return None
    if participant_id == match.player1_id:
        return SIDE_PLAYER1
    if participant_id == match.player2_id:
        return SIDE_PLAYER2
    return None


def _participant_on(match: Match, side: Optional[int]) -> Optional[int]:
    if side == SIDE_PLAYER1:
        return match.player1_id
    if side == SIDE_PLAYER2:
        return match.player2_id
    return None


# =============================================================================
# Elimination advancement
# =============================================================================

def _winning_slot(match: Match) -> Tuple[Optional[int], Optional[int]]:
    """(participant_id, stage_participant_id) that leaves this match as winner."""
    side = _side_of(match, match.winner_id)
    if side is None and match.is_bye:
        # Bye completed before its placeholder was bound: carry the placeholder
        side = SIDE_PLAYER1 if match.stage_player1_id is not None or match.player1_id is not None else SIDE_PLAYER2
    if side is None:
        return None, None
    return _participant_on(match, side), getattr(match, f"stage_player{side}_id")


def complete_bye(session: Session, match: Match) -> bool:
    """Complete a bye match with its single real side as winner. Returns True when it changed."""
    if not match.is_bye or match.is_completed:
        return False
    occupied = [side for side in (SIDE_PLAYER1, SIDE_PLAYER2)
                if getattr(match, f"player{side}_id") is not None or getattr(match, f"stage_player{side}_id") is not None]
    if len(occupied) != 1:
        return False
    match.state = STATE_COMPLETED
    match.winner_id = getattr(match, f"player{occupied[0]}_id")
    match.completed_at = datetime.utcnow()
    session.add(match)
    session.flush()
    logger.info("Bye match %s auto-completed (winner %s)", match.id, match.winner_id)
    return True


def advance_winner(session: Session, match: Match, warn_missing: bool = True) -> int:
    """
    Put the winner of a completed elimination match into every slot that waits
    for it, clearing that slot's prerequisite. Returns slots filled.

    Already-advanced slots have no prerequisite left, so a second call is a
    no-op. A slot holding a different participant is logged and left alone.
    """
    if not match.is_completed or match.group_id is not None:
        return 0
    winner_id, winner_stage_player_id = _winning_slot(match)
    if winner_id is None and winner_stage_player_id is None:
        return 0

    downstream = session.exec(
        select(Match)
        .where(or_(Match.player1_prereq_match_id == match.id, Match.player2_prereq_match_id == match.id))
        .order_by(Match.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).all()
    if not downstream:
        if warn_missing and not match.is_final:
            logger.warning(
                "No downstream match waits for match %s (tournament %s stage %s)",
                match.id, match.tournament_id, match.stage_id,
            )
        return 0

    filled = 0
    for down in downstream:
        for side in (SIDE_PLAYER1, SIDE_PLAYER2):
            if getattr(down, f"player{side}_prereq_match_id") != match.id:
                continue
            current = getattr(down, f"player{side}_id")
            if current is not None and current != winner_id:
                logger.error(
                    "Match %s slot %s already holds participant %s; not overwriting with winner %s of match %s",
                    down.id, side, current, winner_id, match.id,
                )
                continue
            setattr(down, f"player{side}_prereq_match_id", None)
            setattr(down, f"stage_player{side}_id", winner_stage_player_id)
            setattr(down, f"player{side}_id", winner_id)
            session.add(down)
            filled += 1
        session.flush()

        if down.is_bye and complete_bye(session, down):
            filled += advance_winner(session, down, warn_missing=warn_missing)

    return filled


def sync_resolved_slots(session: Session, stage_id: int) -> int:
    """
    Copy bound placeholders into match slots that reference them, and give
    completed byes their winner. Returns fields updated.
    """
    session.flush()
    bound: Dict[int, int] = {
        sp.id: sp.participant_id
        for sp in session.exec(select(StageParticipant).where(StageParticipant.stage_id == stage_id)).all()
        if sp.participant_id is not None
    }
    updated = 0
    matches = session.exec(select(Match).where(Match.stage_id == stage_id).order_by(Match.id)).all()
    for m in matches:
        for side in (SIDE_PLAYER1, SIDE_PLAYER2):
            sp_id = getattr(m, f"stage_player{side}_id")
            if sp_id in bound and getattr(m, f"player{side}_id") is None:
                setattr(m, f"player{side}_id", bound[sp_id])
                session.add(m)
                updated += 1
        if m.is_bye and m.is_completed and m.winner_id is None:
            winner = m.player1_id if m.player1_id is not None else m.player2_id
            if winner is not None:
                m.winner_id = winner
                session.add(m)
                updated += 1
    session.flush()
    if updated:
        logger.info("Synced %s resolved slots in stage %s", updated, stage_id)
    return updated


# =============================================================================
# Group and stage completion
# =============================================================================

def check_group_completion(session: Session, group_id: int) -> bool:
    """Mark the group completed when none of its matches is pending. True on transition."""
    group = session.exec(
        select(Group)
        .where(Group.id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if not group:
        raise NotFound(f"Group {group_id} not found")
    if group.state == STATE_COMPLETED:
        return False

    session.flush()
    pending = session.exec(
        select(func.count())
        .select_from(Match)
        .where(Match.group_id == group_id, Match.state != STATE_COMPLETED)
    ).one()
    if pending:
        return False

    group.state = STATE_COMPLETED
    group.completed_at = datetime.utcnow()
    session.add(group)
    session.flush()
    logger.info("Group %s (%s) of tournament %s completed", group.id, group.name, group.tournament_id)
    return True


def check_group_stage_completion(session: Session, tournament: Tournament) -> bool:
    """
    When every group is completed: close the group stage, make the Final Stage
    current, compute seeds (seeded brackets) and sync resolved slots.
    True on transition.
    """
    group_stage = _lock_stage(session, get_group_stage(session, tournament.id).id)
    if group_stage.state == STATE_COMPLETED:
        return False

    states = session.exec(select(Group.state).where(Group.stage_id == group_stage.id)).all()
    if not states or any(s != STATE_COMPLETED for s in states):
        return False

    final_stage = get_final_stage(session, tournament.id)
    group_stage.state = STATE_COMPLETED
    group_stage.is_current = False
    group_stage.completed_at = datetime.utcnow()
    final_stage.is_current = True
    session.add(group_stage)
    session.add(final_stage)
    session.flush()

    if tournament.bracket_seeding == BRACKET_SEEDING_SEEDED:
        compute_and_apply_seeds(session, tournament.id)
    sync_resolved_slots(session, final_stage.id)

    logger.info(
        "Group stage %s of tournament %s completed; Final Stage %s is current",
        group_stage.id, tournament.id, final_stage.id,
    )
    return True


# =============================================================================
# Tournament completion
# =============================================================================

def _upsert_placement(session: Session, tournament_id: int, placement: int, participant_id: int) -> bool:
    existing = session.exec(
        select(TournamentPlacement).where(
            TournamentPlacement.tournament_id == tournament_id,
            TournamentPlacement.placement == placement,
        )
    ).first()
    if existing:
        if existing.participant_id != participant_id:
            logger.error(
                "Placement %s of tournament %s already recorded for participant %s, not %s",
                placement, tournament_id, existing.participant_id, participant_id,
            )
            raise ConsistencyError(f"Placement {placement} of tournament {tournament_id} is already recorded")
        return False
    session.add(TournamentPlacement(tournament_id=tournament_id, participant_id=participant_id, placement=placement))
    return True


def finalize_tournament(session: Session, final_match: Match) -> bool:
    """Record placements from the completed Final and complete stage and tournament."""
    if not final_match.is_final or not final_match.is_completed or final_match.winner_id is None:
        return False
    tournament = session.get(Tournament, final_match.tournament_id)
    winner_id = final_match.winner_id
    runner_up_id = final_match.player2_id if final_match.player1_id == winner_id else final_match.player1_id

    changed = _upsert_placement(session, tournament.id, PLACEMENT_CHAMPION, winner_id)
    if runner_up_id is not None:
        changed = _upsert_placement(session, tournament.id, PLACEMENT_RUNNER_UP, runner_up_id) or changed

    stage = session.get(Stage, final_match.stage_id)
    if stage.state != STATE_COMPLETED:
        stage.state = STATE_COMPLETED
        stage.completed_at = datetime.utcnow()
        session.add(stage)
        changed = True

    if tournament.state != TOURNAMENT_COMPLETED:
        tournament.first_place_participant_id = winner_id
        tournament.second_place_participant_id = runner_up_id
        tournament.state = TOURNAMENT_COMPLETED
        tournament.completed_at = datetime.utcnow()
        session.add(tournament)
        changed = True

    session.flush()
    if changed:
        logger.info(
            "Tournament %s completed: champion %s, runner-up %s",
            tournament.id, winner_id, runner_up_id,
        )
    return changed


# =============================================================================
# Match completion
# =============================================================================

def _derive_winner(match: Match, scores_csv: Optional[str], winner_id: Optional[int]) -> Tuple[str, Optional[int]]:
    parsed = parse_scores_csv(scores_csv)
    if parsed is None:
        raise ValidationFailed(f"Invalid scores for match {match.id}: {scores_csv!r}")
    derived = _participant_on(match, parsed.winning_side)
    if winner_id is not None:
        if _side_of(match, winner_id) is None:
            raise ValidationFailed(f"Participant {winner_id} does not play in match {match.id}")
        if derived is not None and derived != winner_id:
            raise ValidationFailed(f"Winner {winner_id} contradicts scores {scores_csv!r} for match {match.id}")
        return parsed.to_csv(), winner_id
    return parsed.to_csv(), derived


def _replay_completed(session: Session, match: Match, scores_csv: Optional[str], winner_id: Optional[int]) -> CompletionResult:
    canonical, new_winner = _derive_winner(match, scores_csv, winner_id)
    result = CompletionResult(
        match_id=match.id,
        tournament_id=match.tournament_id,
        changed=False,
        winner_id=match.winner_id,
        scores_csv=match.scores_csv,
    )
    if new_winner != match.winner_id:
        logger.error(
            "Refusing to change winner of completed match %s (tournament %s stage %s) from %s to %s",
            match.id, match.tournament_id, match.stage_id, match.winner_id, new_winner,
        )
        raise ConsistencyError(f"Match {match.id} is completed; its winner cannot be changed")
    if canonical != match.scores_csv:
        match.scores_csv = canonical
        session.add(match)
        session.flush()
        result.changed = True
        result.scores_csv = canonical
        result.events.append((EVENT_MATCH_UPDATED, {"tournament_id": match.tournament_id, "match_id": match.id}))
    return result


def _apply_result(
    session: Session,
    match: Match,
    scores_csv: Optional[str],
    winner_id: Optional[int],
    rating_config: Optional[RatingConfig],
) -> CompletionResult:
    if match.is_bye:
        raise ValidationFailed(f"Match {match.id} is a bye and completes automatically")
    if match.is_completed:
        return _replay_completed(session, match, scores_csv, winner_id)

    if match.player1_id is None or match.player2_id is None:
        raise ConsistencyError(f"Match {match.id} is not ready: both participants must be known")

    canonical, winner = _derive_winner(match, scores_csv, winner_id)
    is_group_match = match.group_id is not None
    if winner is None and not is_group_match:
        raise ValidationFailed(f"Elimination match {match.id} needs a winner")

    tournament = session.get(Tournament, match.tournament_id)
    match.scores_csv = canonical
    match.winner_id = winner
    match.state = STATE_COMPLETED
    match.completed_at = datetime.utcnow()
    session.add(match)
    if tournament.state == TOURNAMENT_PENDING:
        tournament.state = STATE_IN_PROGRESS
        session.add(tournament)
    session.flush()

    result = CompletionResult(
        match_id=match.id,
        tournament_id=match.tournament_id,
        winner_id=winner,
        scores_csv=canonical,
    )
    result.events.append((EVENT_MATCH_UPDATED, {"tournament_id": tournament.id, "match_id": match.id}))

    if tournament.is_rated:
        result.rating_changes = len(apply_match_rating(session, match, rating_config))

    if is_group_match:
        if check_group_completion(session, match.group_id):
            result.group_completed = True
            if tournament.bracket_seeding == BRACKET_SEEDING_GROUP_RANK:
                group = session.get(Group, match.group_id)
                resolve_group_rank_placeholders(session, tournament.id, group)
                sync_resolved_slots(session, get_final_stage(session, tournament.id).id)
            result.events.append((EVENT_GROUPS_UPDATED, {"tournament_id": tournament.id, "group_id": match.group_id}))
            if check_group_stage_completion(session, tournament):
                result.stage_completed = True
                result.events.append((EVENT_MATCHES_GENERATED, {"tournament_id": tournament.id}))
                result.events.append((EVENT_TOURNAMENT_UPDATED, {"tournament_id": tournament.id}))
    else:
        result.advanced_count = advance_winner(session, match)
        if match.is_final and finalize_tournament(session, match):
            result.stage_completed = True
            result.tournament_completed = True
            result.events.append((EVENT_PLACEMENTS_UPDATED, {"tournament_id": tournament.id}))
            result.events.append((EVENT_TOURNAMENT_UPDATED, {"tournament_id": tournament.id}))

    return result


def complete_match(
    session: Session,
    match_id: int,
    scores_csv: Optional[str],
    winner_id: Optional[int] = None,
    actor: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    rating_config: Optional[RatingConfig] = None,
) -> CompletionResult:
    """
    Record a match result and propagate it, atomically.

    Replaying a stored result is a no-op; a new score with the same winner only
    updates scores_csv; a different winner is rejected (ConsistencyError).
    """
    tournament_id = None
    try:
        match = _lock_match(session, match_id)
        tournament_id = match.tournament_id
        result = _apply_result(session, match, scores_csv, winner_id, rating_config)
        session.commit()
    except CourtdrawError as e:
        session.rollback()
        activity_log.record_activity(
            session.get_bind(),
            activity_log.ACTION_MATCH_COMPLETED,
            tournament_id=tournament_id,
            entity_type="match",
            entity_id=match_id,
            description=f"Match {match_id} rejected: {e}",
            status=activity_log.STATUS_FAILURE,
            actor=actor,
        )
        raise
    except Exception:
        session.rollback()
        raise

    if result.changed:
        for event, payload in result.events:
            safe_emit(event, payload, notifier)
        activity_log.record_activity(
            session.get_bind(),
            activity_log.ACTION_MATCH_COMPLETED,
            tournament_id=result.tournament_id,
            entity_type="match",
            entity_id=result.match_id,
            description=f"Match {result.match_id} completed: {result.scores_csv} (winner {result.winner_id})",
            actor=actor,
        )
    return result


# =============================================================================
# Bulk repair
# =============================================================================

def _count_unknown(session: Session, stage_id: int) -> int:
    return session.exec(
        select(func.count())
        .select_from(Match)
        .where(
            Match.stage_id == stage_id,
            Match.is_bye == False,  # noqa: E712
            or_(col(Match.player1_id).is_(None), col(Match.player2_id).is_(None)),
        )
    ).one()


def resolve_all_dependencies(session: Session, stage_id: int) -> Dict[str, int]:
    """
    Re-apply single-hop advancement for every completed elimination match of a
    stage, in match id order. Idempotent. Flushes, does not commit.

    Returns:
        matches_processed, teams_advanced, unknown_before, unknown_after
    """
    stage = session.get(Stage, stage_id)
    if not stage:
        raise NotFound(f"Stage {stage_id} not found")

    unknown_before = _count_unknown(session, stage_id)
    sync_resolved_slots(session, stage_id)

    completed = session.exec(
        select(Match)
        .where(Match.stage_id == stage_id, col(Match.group_id).is_(None), Match.state == STATE_COMPLETED)
        .order_by(Match.id)
    ).all()

    teams_advanced = 0
    for match in completed:
        teams_advanced += advance_winner(session, match, warn_missing=False)

    # Byes whose side arrived outside complete_match
    pending_byes = session.exec(
        select(Match)
        .where(Match.stage_id == stage_id, Match.is_bye == True, Match.state == STATE_PENDING)  # noqa: E712
        .order_by(Match.id)
    ).all()
    for bye in pending_byes:
        if complete_bye(session, bye):
            teams_advanced += advance_winner(session, bye, warn_missing=False)

    session.flush()
    unknown_after = _count_unknown(session, stage_id)
    logger.info(
        "Resolved dependencies for stage %s: processed=%s advanced=%s unknown %s -> %s",
        stage_id, len(completed), teams_advanced, unknown_before, unknown_after,
    )
    return {
        "matches_processed": len(completed),
        "teams_advanced": teams_advanced,
        "unknown_before": unknown_before,
        "unknown_after": unknown_after,
    }
