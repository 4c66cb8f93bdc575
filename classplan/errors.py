"""Exception hierarchy for course scheduling.

Conflicts and invalid definitions are user-data errors: they are raised where
they are detected and travel up unchanged.  Storage failures are re-raised at
the transaction boundary they happened in, tagged with the phase so callers
can tell a lost course apart from a course whose sessions were not saved.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

COURSE_PHASE = "course"
SESSIONS_PHASE = "sessions"


class SchedulingError(Exception):
    """Base class for all errors raised by :mod:`classplan`."""


class InvalidScheduleDefinition(SchedulingError):
    """A course or schedule day violates its basic invariants."""


class ScheduleConflict(SchedulingError):
    """A candidate session overlaps a session that already holds a resource."""

    kind = "resource"

    def __init__(
        self,
        conflict_date: date,
        resource_id: str,
        existing_session_id: str,
        candidate: Any = None,
    ) -> None:
        self.conflict_date = conflict_date
        self.resource_id = resource_id
        self.existing_session_id = existing_session_id
        self.candidate = candidate
        super().__init__(
            f"{self.kind.capitalize()} {resource_id} is already booked on "
            f"{conflict_date.isoformat()} by session {existing_session_id}"
        )


class RoomConflict(ScheduleConflict):
    kind = "room"

    @property
    def room_id(self) -> str:
        return self.resource_id


class TeacherConflict(ScheduleConflict):
    kind = "teacher"

    @property
    def teacher_id(self) -> str:
        return self.resource_id


class StorageFailure(SchedulingError):
    """Persistence failed inside one phase of course creation."""

    def __init__(self, phase: str, message: str, *, course_id: Optional[str] = None) -> None:
        self.phase = phase
        self.course_id = course_id
        super().__init__(message)


__all__ = [
    "COURSE_PHASE",
    "SESSIONS_PHASE",
    "SchedulingError",
    "InvalidScheduleDefinition",
    "ScheduleConflict",
    "RoomConflict",
    "TeacherConflict",
    "StorageFailure",
]
