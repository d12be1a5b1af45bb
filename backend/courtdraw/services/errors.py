"""
Engine error taxonomy.

ValidationFailed and NotFound are raised before anything is mutated.
ConsistencyError (and subclasses) abort the running unit of work; the caller
rolls the session back.
"""


class CourtdrawError(Exception):
    """Base class for engine errors"""

    pass


class ValidationFailed(CourtdrawError):
    """Input rejected before any mutation"""

    pass


class NotFound(CourtdrawError):
    """Tournament, stage, group, match, participant or user is missing"""

    pass


class ConsistencyError(CourtdrawError):
    """Stored state contradicts what the operation needs; fatal to the operation"""

    pass


class PlaceholderConflict(ConsistencyError):
    """A stage placeholder is already bound to a different participant"""

    pass


class RatingError(ConsistencyError):
    """A match side cannot be rated (no identifiable users)"""

    pass
