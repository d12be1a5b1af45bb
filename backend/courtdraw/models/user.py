from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """Registered player. Carries the rating record (rating, category, rank)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: Optional[str] = Field(default=None, index=True)
    rating: Optional[float] = Field(default=900.0)
    category: str = Field(default="D-")  # Letter + modifier, e.g. "C+"
    rank: Optional[int] = Field(default=None)  # Position within category letter
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
