from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class TournamentPlacement(SQLModel, table=True):
    __tablename__ = "tournament_placement"
    __table_args__ = (SAUniqueConstraint("tournament_id", "placement", name="uq_tournament_placement"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    participant_id: int = Field(foreign_key="participant.id")
    placement: int  # 1 = champion, 2 = runner-up
    created_at: datetime = Field(default_factory=datetime.utcnow)
