"""Room and teacher occupancy lookups.

Occupancy is never stored on its own; it is worked out from existing
sessions.  :class:`SessionAvailability` does that over a list of sessions,
and :class:`classplan.db.SQLiteAvailability` does it inside a session-store
transaction.
"""

from __future__ import annotations

from datetime import date, time
from typing import Iterable, List, Optional, Protocol, Tuple

from .models import ClassSession

ROOM = "room"
TEACHER = "teacher"


class AvailabilityIndex(Protocol):
    def find_room_overlap(self, room_id: str, day: date, start: time, end: time) -> Optional[str]:
        """Return the id of a session occupying ``room_id`` or ``None``."""

    def find_teacher_overlap(self, teacher_id: str, day: date, start: time, end: time) -> Optional[str]:
        """Return the id of a session taught by ``teacher_id`` or ``None``."""


def has_overlap(
    index: AvailabilityIndex,
    kind: str,
    resource_id: str,
    day: date,
    start: time,
    end: time,
) -> Tuple[bool, Optional[str]]:
    """Return ``(occupied, conflicting_session_id)`` for a room or teacher."""

    if kind == ROOM:
        found = index.find_room_overlap(resource_id, day, start, end)
    elif kind == TEACHER:
        found = index.find_teacher_overlap(resource_id, day, start, end)
    else:
        raise ValueError(f"Unknown resource kind: {kind!r}")
    return found is not None, found


class SessionAvailability:
    """Availability index over an in-memory collection of sessions."""

    def __init__(self, sessions: Iterable[ClassSession] = ()) -> None:
        self._sessions: List[ClassSession] = list(sessions)

    def add(self, session: ClassSession) -> None:
        self._sessions.append(session)

    def find_room_overlap(self, room_id: str, day: date, start: time, end: time) -> Optional[str]:
        for session in self._sessions:
            if session.room_id == room_id and session.overlaps(day, start, end):
                return session.session_id
        return None

    def find_teacher_overlap(self, teacher_id: str, day: date, start: time, end: time) -> Optional[str]:
        for session in self._sessions:
            if session.teacher_id == teacher_id and session.overlaps(day, start, end):
                return session.session_id
        return None


__all__ = ["ROOM", "TEACHER", "AvailabilityIndex", "SessionAvailability", "has_overlap"]
