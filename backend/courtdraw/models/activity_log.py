"""Audit log model for state-changing operations."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class ActivityLog(SQLModel, table=True):
    """One row per audited action. Written best-effort, after the primary commit."""

    __tablename__ = "activity_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: Optional[int] = Field(default=None, index=True)
    actor: Optional[str] = Field(default=None)  # Free-form actor name/id supplied by the caller
    action_type: str  # match_completed|bracket_generated|group_completed|participant_disqualified|...
    entity_type: Optional[str] = Field(default=None)
    entity_id: Optional[int] = Field(default=None)
    description: Optional[str] = Field(default=None)
    status: str = Field(default="success")  # success|failure
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
