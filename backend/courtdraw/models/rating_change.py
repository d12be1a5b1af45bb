from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class RatingChange(SQLModel, table=True):
    """Per-user rating history for a rated match. At most one row per (user, match)."""

    __tablename__ = "rating_change"
    __table_args__ = (SAUniqueConstraint("user_id", "match_id", name="uq_rating_change_user_match"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    tournament_id: int = Field(foreign_key="tournament.id")
    participant_id: int = Field(foreign_key="participant.id")
    rating_before: float
    rating_after: float
    delta: float
    category_before: str
    category_after: str
    k_factor: float
    created_at: datetime = Field(default_factory=datetime.utcnow)
