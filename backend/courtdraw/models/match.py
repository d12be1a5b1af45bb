from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtdraw.models.group import Group
    from courtdraw.models.stage import Stage
    from courtdraw.models.tournament import Tournament

STATE_PENDING = "pending"
STATE_COMPLETED = "completed"


class Match(SQLModel, table=True):
    """Node of the bracket dependency graph.

    Each side is filled either directly (stage_playerN_id / playerN_id) or through a
    prerequisite (playerN_prereq_match_id = "winner of match X"), never both at once.
    Group-stage matches only use playerN_id.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    group_id: Optional[int] = Field(default=None, foreign_key="group.id", index=True)

    round_number: int
    round_name: Optional[str] = Field(default=None)  # "Final", "Semi Finals", "Play-In", ...
    sequence_in_round: int = Field(default=1)
    identifier: Optional[str] = Field(default=None)  # Display text, e.g. "Seed1 vs Winner of M12 (Final)"
    state: str = Field(default=STATE_PENDING)  # "pending" | "completed"

    # Resolved participants (what scores and winner_id refer to)
    player1_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    player2_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    # Elimination slots: placeholder reference or "winner of" reference
    stage_player1_id: Optional[int] = Field(default=None, foreign_key="stage_participant.id")
    stage_player2_id: Optional[int] = Field(default=None, foreign_key="stage_participant.id")
    player1_prereq_match_id: Optional[int] = Field(default=None, foreign_key="match.id", index=True)
    player2_prereq_match_id: Optional[int] = Field(default=None, foreign_key="match.id", index=True)

    scores_csv: Optional[str] = Field(default=None)  # "6-3,4-6,10-7" (player1-player2 per set)
    winner_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    is_bye: bool = Field(default=False)
    is_final: bool = Field(default=False)  # Designated Final of the Final Stage
    rating_applied: bool = Field(default=False)

    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    stage: "Stage" = Relationship(back_populates="matches")
    group: Optional["Group"] = Relationship(back_populates="matches")

    @property
    def is_completed(self) -> bool:
        return self.state == STATE_COMPLETED
