# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from courtdraw.models.activity_log import ActivityLog  # noqa: F401
from courtdraw.models.group import Group, GroupParticipant  # noqa: F401
from courtdraw.models.match import Match  # noqa: F401
from courtdraw.models.participant import Participant  # noqa: F401
from courtdraw.models.placement import TournamentPlacement  # noqa: F401
from courtdraw.models.rating_change import RatingChange  # noqa: F401
from courtdraw.models.stage import Stage  # noqa: F401
from courtdraw.models.stage_participant import StageParticipant  # noqa: F401
from courtdraw.models.tournament import Tournament  # noqa: F401
from courtdraw.models.user import User  # noqa: F401
