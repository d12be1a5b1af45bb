from courtdraw.models.activity_log import ActivityLog
from courtdraw.models.group import Group, GroupParticipant
from courtdraw.models.match import Match
from courtdraw.models.participant import Participant
from courtdraw.models.placement import TournamentPlacement
from courtdraw.models.rating_change import RatingChange
from courtdraw.models.stage import Stage
from courtdraw.models.stage_participant import StageParticipant
from courtdraw.models.tournament import Tournament
from courtdraw.models.user import User

__all__ = [
    "Tournament",
    "Stage",
    "Group",
    "GroupParticipant",
    "Participant",
    "StageParticipant",
    "Match",
    "User",
    "RatingChange",
    "TournamentPlacement",
    "ActivityLog",
]
