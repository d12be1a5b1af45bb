from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtdraw.models.group import Group
    from courtdraw.models.match import Match
    from courtdraw.models.participant import Participant
    from courtdraw.models.stage import Stage


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    category: Optional[str] = None  # "D-", "C+", ... (informational)
    tournament_format: str = Field(default="round_robin")  # "round_robin" | "single"
    participants_per_group: Optional[int] = Field(default=None)
    participants_advance: Optional[int] = Field(default=None)
    bracket_seeding: str = Field(default="seeded")  # "seeded" | "group_rank"
    bye_strategy: str = Field(default="direct")  # "direct" | "auto_complete"
    allow_withdrawal: bool = Field(default=True)
    is_rated: bool = Field(default=True)
    state: str = Field(default="pending")  # "pending" | "in_progress" | "completed"

    first_place_participant_id: Optional[int] = Field(default=None)
    second_place_participant_id: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    stages: List["Stage"] = Relationship(back_populates="tournament")
    groups: List["Group"] = Relationship(back_populates="tournament")
    participants: List["Participant"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
