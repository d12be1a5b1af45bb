from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtdraw.models.tournament import Tournament


class Participant(SQLModel, table=True):
    """One competitive unit: a single player or a team of up to two users."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    comment: Optional[str] = None
    user1_id: Optional[int] = Field(default=None, foreign_key="user.id")
    user2_id: Optional[int] = Field(default=None, foreign_key="user.id")
    is_disqualified: bool = Field(default=False)
    seed: Optional[int] = Field(default=None)  # Assigned once, after the group stage
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="participants")

    def user_ids(self) -> List[int]:
        return [uid for uid in (self.user1_id, self.user2_id) if uid is not None]
