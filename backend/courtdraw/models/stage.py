from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtdraw.models.group import Group
    from courtdraw.models.match import Match
    from courtdraw.models.stage_participant import StageParticipant
    from courtdraw.models.tournament import Tournament

GROUP_STAGE_NAME = "Group Stage"
FINAL_STAGE_NAME = "Final Stage"

STAGE_ROUND_ROBIN = "round_robin"
STAGE_ELIMINATION = "elimination"
STAGE_SINGLE = "single"


class Stage(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "order_index", name="uq_tournament_stage_order"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str  # "Group Stage" | "Final Stage"
    type: str  # "round_robin" | "elimination" | "single"
    order_index: int
    is_current: bool = Field(default=False)
    state: str = Field(default="pending")  # "pending" | "completed"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="stages")
    groups: List["Group"] = Relationship(back_populates="stage")
    stage_participants: List["StageParticipant"] = Relationship(back_populates="stage")
    matches: List["Match"] = Relationship(back_populates="stage")
