from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtdraw.models.match import Match
    from courtdraw.models.stage import Stage
    from courtdraw.models.tournament import Tournament


class Group(SQLModel, table=True):
    """Round-robin pool inside the group stage. group_index 0 maps to letter A."""

    __table_args__ = (SAUniqueConstraint("stage_id", "group_index", name="uq_stage_group_index"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    name: str
    group_index: int
    state: str = Field(default="pending")  # "pending" | "completed"
    scheduled_time: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="groups")
    stage: "Stage" = Relationship(back_populates="groups")
    members: List["GroupParticipant"] = Relationship(back_populates="group")
    matches: List["Match"] = Relationship(back_populates="group")


class GroupParticipant(SQLModel, table=True):
    __tablename__ = "group_participant"
    __table_args__ = (SAUniqueConstraint("group_id", "participant_id", name="uq_group_participant"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="group.id", index=True)
    participant_id: int = Field(foreign_key="participant.id", index=True)

    group: "Group" = Relationship(back_populates="members")
