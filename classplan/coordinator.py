"""Two-phase course creation.

Phase 1 saves the course header and its schedule days in a transaction of
their own.  Phase 2 opens a separate session transaction, expands the
schedule, generates the sessions against the rooms and teachers already
booked, inserts them and commits.

A failure in phase 2 rolls back phase 2 only.  The course row from phase 1
stays and the outcome is ``partial``; :meth:`regenerate_sessions` is the
operator's way to retry.  There is no compensating delete of the course.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from .errors import (
    COURSE_PHASE,
    SESSIONS_PHASE,
    ScheduleConflict,
    SchedulingError,
    StorageFailure,
)
from .generator import generate
from .holidays import HolidayOracle
from .models import ClassSession, Course
from .recurrence import expand

_LOG = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class CreationOutcome:
    """What happened to a course creation (or session regeneration) request."""

    kind: OutcomeKind
    course_id: str
    course: Optional[Course] = None
    sessions: List[ClassSession] = field(default_factory=list)
    cause: Optional[Exception] = None
    phase: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.kind is OutcomeKind.COMPLETE

    @property
    def partial(self) -> bool:
        return self.kind is OutcomeKind.PARTIAL

    @property
    def failed(self) -> bool:
        return self.kind is OutcomeKind.FAILED

    @property
    def conflict(self) -> Optional[ScheduleConflict]:
        return self.cause if isinstance(self.cause, ScheduleConflict) else None

    def message(self) -> str:
        """User-facing summary; each outcome kind reads differently."""

        if self.kind is OutcomeKind.COMPLETE:
            return f"Course {self.course_id} created with {len(self.sessions)} sessions."
        reason = str(self.cause) if self.cause is not None else "unknown error"
        if self.kind is OutcomeKind.PARTIAL:
            return f"Course saved but sessions failed: {reason}"
        return f"Course creation failed: {reason}"


class ChangeKind(str, Enum):
    COURSE_SAVED = "course_saved"
    COURSE_FAILED = "course_failed"
    SESSIONS_SAVED = "sessions_saved"
    SESSIONS_FAILED = "sessions_failed"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    course_id: str
    session_count: int = 0
    cause: Optional[Exception] = None


class CourseStore(Protocol):
    def save(self, course: Course) -> bool: ...

    def find_by_id(self, course_id: str) -> Optional[Course]: ...

    def find_ending_on_or_after(self, day: date) -> List[Course]: ...


class SessionStore(Protocol):
    def transaction(self, timeout: Optional[float] = None): ...

    def availability(self, txn): ...

    def bulk_insert(self, sessions: Sequence[ClassSession], txn) -> None: ...

    def delete_by_course(self, course_id: str, txn) -> int: ...


Listener = Callable[[ChangeEvent], None]


class CourseSchedulingCoordinator:
    """Creates courses and materialises their sessions.

    All collaborators are passed in; nothing is looked up globally.  Callers
    must not run two phase-2 attempts for the same course at once.
    """

    def __init__(
        self,
        course_store: CourseStore,
        session_store: SessionStore,
        holiday_oracle: HolidayOracle,
        *,
        listener: Optional[Listener] = None,
        txn_timeout: Optional[float] = None,
    ) -> None:
        self.course_store = course_store
        self.session_store = session_store
        self.holiday_oracle = holiday_oracle
        self.listener = listener
        self.txn_timeout = txn_timeout

    def _notify(self, kind: ChangeKind, course_id: str, session_count: int = 0, cause: Optional[Exception] = None) -> None:
        if self.listener is None:
            return
        try:
            self.listener(ChangeEvent(kind, course_id, session_count, cause))
        except Exception as exc:
            logging.warning("Change listener failed for %s (%s): %s", course_id, kind.value, exc)

    # -- phase 1 -----------------------------------------------------------

    def _save_course(self, course: Course) -> Optional[Exception]:
        """Run phase 1; return the failure cause or ``None`` when saved."""

        try:
            saved = self.course_store.save(course)
        except StorageFailure as exc:
            return exc
        except sqlite3.Error as exc:
            logging.exception("Failed to save course %s", course.course_id)
            return StorageFailure(COURSE_PHASE, f"Could not save course {course.course_id}: {exc}", course_id=course.course_id)
        if not saved:
            return StorageFailure(
                COURSE_PHASE,
                f"Course {course.course_id} could not be saved (duplicate identifier?)",
                course_id=course.course_id,
            )
        return None

    # -- phase 2 -----------------------------------------------------------

    def _materialise_sessions(self, course: Course, *, replace_existing: bool) -> List[ClassSession]:
        """Run phase 2 in its own transaction and return the saved sessions.

        Raises :class:`ScheduleConflict` or :class:`StorageFailure`; in both
        cases nothing from this phase is committed.
        """

        try:
            with self.session_store.transaction(self.txn_timeout) as txn:
                if replace_existing:
                    removed = self.session_store.delete_by_course(course.course_id, txn)
                    _LOG.info("Cleared %s existing sessions of course %s", removed, course.course_id)
                candidates = expand(course.start_date, course.end_date, course.schedule_days, self.holiday_oracle)
                result = generate(course, candidates, self.session_store.availability(txn))
                if result.conflict is not None:
                    raise result.conflict
                self.session_store.bulk_insert(result.sessions, txn)
                txn.commit()
        except SchedulingError:
            raise
        except Exception as exc:
            # Any other collaborator failure ends phase 2 the same way.
            logging.exception("Session transaction for course %s failed", course.course_id)
            raise StorageFailure(
                SESSIONS_PHASE,
                f"Could not save sessions for course {course.course_id}: {exc}",
                course_id=course.course_id,
            ) from exc
        return result.sessions

    def _phase_two(self, course: Course, *, replace_existing: bool) -> CreationOutcome:
        try:
            sessions = self._materialise_sessions(course, replace_existing=replace_existing)
        except SchedulingError as exc:
            _LOG.warning("Sessions for course %s were not saved: %s", course.course_id, exc)
            self._notify(ChangeKind.SESSIONS_FAILED, course.course_id, cause=exc)
            return CreationOutcome(OutcomeKind.PARTIAL, course.course_id, course, cause=exc, phase=SESSIONS_PHASE)

        _LOG.info("Saved %s sessions for course %s", len(sessions), course.course_id)
        self._notify(ChangeKind.SESSIONS_SAVED, course.course_id, len(sessions))
        return CreationOutcome(OutcomeKind.COMPLETE, course.course_id, course, sessions=sessions)

    # -- public operations -------------------------------------------------

    def create_course_and_generate_sessions(self, course: Course) -> CreationOutcome:
        """Save ``course`` and then its generated sessions.

        Raises :class:`InvalidScheduleDefinition` before touching storage when
        the course itself is malformed.  Every other problem is reported
        through the returned :class:`CreationOutcome`.
        """

        course.validate()

        cause = self._save_course(course)
        if cause is not None:
            _LOG.warning("Course %s was not created: %s", course.course_id, cause)
            self._notify(ChangeKind.COURSE_FAILED, course.course_id, cause=cause)
            return CreationOutcome(OutcomeKind.FAILED, course.course_id, course, cause=cause, phase=COURSE_PHASE)

        _LOG.info("Saved course %s (%s)", course.course_id, course.name)
        self._notify(ChangeKind.COURSE_SAVED, course.course_id)
        return self._phase_two(course, replace_existing=False)

    def regenerate_sessions(self, course_id: str) -> CreationOutcome:
        """Replace the sessions of an already saved course.

        Used to recover a ``partial`` outcome after the conflicting booking or
        the storage problem has been dealt with.  Old and new sessions are
        swapped in the same transaction.
        """

        course = self.course_store.find_by_id(course_id)
        if course is None:
            cause = StorageFailure(COURSE_PHASE, f"Course {course_id} does not exist", course_id=course_id)
            return CreationOutcome(OutcomeKind.FAILED, course_id, cause=cause, phase=COURSE_PHASE)
        return self._phase_two(course, replace_existing=True)

    def reschedule_courses_from(self, from_date: date) -> List[CreationOutcome]:
        """Regenerate sessions of every course still running on ``from_date``.

        Meant for after the holiday list changed.  Each course gets its own
        transaction, so one course's conflict leaves the others rescheduled.
        """

        outcomes = []
        for course in self.course_store.find_ending_on_or_after(from_date):
            outcomes.append(self._phase_two(course, replace_existing=True))
        done = sum(1 for o in outcomes if o.complete)
        _LOG.info("Rescheduled %s of %s courses from %s", done, len(outcomes), from_date.isoformat())
        return outcomes


__all__ = [
    "OutcomeKind",
    "CreationOutcome",
    "ChangeKind",
    "ChangeEvent",
    "CourseSchedulingCoordinator",
]
