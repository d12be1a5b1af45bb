from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtdraw.models.stage import Stage


class StageParticipant(SQLModel, table=True):
    """Bracket slot placeholder ("Seed3", "A1") bound to a participant once resolved."""

    __tablename__ = "stage_participant"
    __table_args__ = (
        SAUniqueConstraint("stage_id", "participant_label", name="uq_stage_participant_label"),
        SAUniqueConstraint("stage_id", "seed", name="uq_stage_participant_seed"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    participant_label: str
    seed: Optional[int] = Field(default=None)
    participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    stage: "Stage" = Relationship(back_populates="stage_participants")
