"""Turn candidate dates into class sessions, rejecting double-bookings."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, NamedTuple, Optional

from .availability import AvailabilityIndex, SessionAvailability
from .errors import RoomConflict, ScheduleConflict, TeacherConflict
from .models import ClassSession, Course
from .recurrence import Candidate

_LOG = logging.getLogger(__name__)


class GenerationResult(NamedTuple):
    sessions: List[ClassSession]
    conflict: Optional[ScheduleConflict] = None

    @property
    def ok(self) -> bool:
        return self.conflict is None


def session_id_for(course_id: str, session_date: date, number: int) -> str:
    """Deterministic session id, e.g. ``SESS_A1-Bonn_20240108_004``.

    The course id is kept verbatim; the date and number suffix has a fixed
    width, so different courses never share a session id.
    """

    return f"SESS_{course_id}_{session_date:%Y%m%d}_{number:03d}"


def generate(
    course: Course,
    candidates: Iterable[Candidate],
    availability: AvailabilityIndex,
) -> GenerationResult:
    """Build the sessions for ``course`` from ``candidates``.

    The first room or teacher clash stops generation; the result then holds
    the conflict and no sessions.  Candidates are also checked against the
    sessions accepted earlier in the same run.
    """

    accepted: List[ClassSession] = []
    pending = SessionAvailability()

    for number, candidate in enumerate(candidates, start=1):
        slot = candidate.schedule_day
        session = ClassSession(
            session_id=session_id_for(course.course_id, candidate.session_date, number),
            course_id=course.course_id,
            session_date=candidate.session_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            room_id=course.room_id,
            teacher_id=course.teacher_id,
            session_number=number,
        )
        args = (candidate.session_date, slot.start_time, slot.end_time)

        existing = availability.find_room_overlap(course.room_id, *args) or pending.find_room_overlap(
            course.room_id, *args
        )
        if existing:
            conflict: ScheduleConflict = RoomConflict(
                candidate.session_date, course.room_id, existing, candidate=session
            )
            _LOG.warning("Course %s: %s", course.course_id, conflict)
            return GenerationResult([], conflict)

        existing = availability.find_teacher_overlap(course.teacher_id, *args) or pending.find_teacher_overlap(
            course.teacher_id, *args
        )
        if existing:
            conflict = TeacherConflict(
                candidate.session_date, course.teacher_id, existing, candidate=session
            )
            _LOG.warning("Course %s: %s", course.course_id, conflict)
            return GenerationResult([], conflict)

        accepted.append(session)
        pending.add(session)

    _LOG.info("Generated %s sessions for course %s", len(accepted), course.course_id)
    return GenerationResult(accepted)


__all__ = ["GenerationResult", "generate", "session_id_for"]
