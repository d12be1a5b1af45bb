"""Real-time notification emission.

The engine emits events after its transaction commits. A Notifier is anything
with emit(event, payload); failures are logged and never reach the caller.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

EVENT_GROUPS_UPDATED = "groups-updated"
EVENT_MATCHES_GENERATED = "matches-generated"
EVENT_MATCH_UPDATED = "match-updated"
EVENT_TOURNAMENT_UPDATED = "tournament-updated"
EVENT_PARTICIPANT_DISQUALIFIED = "participant-disqualified"
EVENT_PLACEMENTS_UPDATED = "placements-updated"


class Notifier(Protocol):
    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes events to the log."""

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info("event=%s payload=%s", event, payload)


class RecordingNotifier:
    """Keeps emitted events in memory (used by tests and local tooling)."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


_default_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _default_notifier


def set_notifier(notifier: Notifier) -> None:
    global _default_notifier
    _default_notifier = notifier


def safe_emit(event: str, payload: Dict[str, Any], notifier: Optional[Notifier] = None) -> bool:
    """Emit one event. Returns False (after logging) if the notifier raised."""
    target = notifier or get_notifier()
    try:
        target.emit(event, payload)
        return True
    except Exception as e:
        logger.error(f"Failed to emit {event}: {e}")
        return False
