"""Activity audit log.

Audit rows are written in their own session after the primary unit of work has
committed, so an audit failure can never roll back or block the action it
describes.
"""

import logging
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from courtdraw.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)

ACTION_TOURNAMENT_CREATED = "tournament_created"
ACTION_PARTICIPANT_REGISTERED = "participant_registered"
ACTION_PARTICIPANT_DISQUALIFIED = "participant_disqualified"
ACTION_PARTICIPANT_WITHDRAWN = "participant_withdrawn"
ACTION_GROUPS_CREATED = "groups_created"
ACTION_MATCHES_GENERATED = "matches_generated"
ACTION_BRACKET_GENERATED = "bracket_generated"
ACTION_MATCH_COMPLETED = "match_completed"
ACTION_DEPENDENCIES_RESOLVED = "dependencies_resolved"

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"


def record_activity(
    bind: Engine,
    action_type: str,
    tournament_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    description: Optional[str] = None,
    status: str = STATUS_SUCCESS,
    actor: Optional[str] = None,
) -> bool:
    """Write one audit row. Returns False (after logging) on failure."""
    try:
        with Session(bind) as audit_session:
            audit_session.add(ActivityLog(
                tournament_id=tournament_id,
                actor=actor,
                action_type=action_type,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
                status=status,
            ))
            audit_session.commit()
        return True
    except Exception:
        logger.exception("Failed to record activity %s for tournament %s", action_type, tournament_id)
        return False


def list_activity(session: Session, tournament_id: int) -> List[ActivityLog]:
    return list(session.exec(
        select(ActivityLog).where(ActivityLog.tournament_id == tournament_id).order_by(ActivityLog.id)
    ).all())
