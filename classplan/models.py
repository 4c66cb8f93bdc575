"""Value objects for courses, their weekly schedule and generated sessions.

Everything here is immutable.  A :class:`Course` owns its
:class:`ScheduleDay` entries; a :class:`ClassSession` only refers back to its
course by identifier.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Iterable, Optional, Tuple

from .errors import InvalidScheduleDefinition


class Weekday(Enum):
    """Day of week, valued like :meth:`datetime.date.weekday`."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value: object) -> "Weekday":
        """Return the weekday for ``value``.

        Accepts a :class:`Weekday`, an ``int`` (0 = Monday), full English day
        names or their three-letter abbreviations in any case.
        """
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise InvalidScheduleDefinition(f"Invalid weekday number: {value}") from None
        text = str(value or "").strip().lower()
        for day in cls:
            name = day.name.lower()
            if text == name or (len(text) == 3 and name.startswith(text)):
                return day
        raise InvalidScheduleDefinition(f"Unknown weekday: {value!r}")

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())

    @property
    def short_name(self) -> str:
        return self.name[:3].capitalize()


class CourseStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


@dataclass(frozen=True)
class ScheduleDay:
    """A weekly meeting slot: weekday plus a time-of-day window."""

    weekday: Weekday
    start_time: time
    end_time: time

    def validate(self) -> None:
        if not isinstance(self.weekday, Weekday):
            raise InvalidScheduleDefinition(f"Invalid weekday: {self.weekday!r}")
        if self.start_time >= self.end_time:
            raise InvalidScheduleDefinition(
                f"{self.weekday.short_name} slot starts at {self.start_time:%H:%M} "
                f"but ends at {self.end_time:%H:%M}"
            )

    @property
    def duration_minutes(self) -> int:
        return max(0, _minutes(self.end_time) - _minutes(self.start_time))

    def __str__(self) -> str:
        return f"{self.weekday.short_name} {self.start_time:%H:%M}-{self.end_time:%H:%M}"


@dataclass(frozen=True)
class Course:
    """A course with its recurring weekly schedule.

    ``schedule_days`` keeps declaration order; that order decides how
    sessions on the same date are numbered.  Duplicate weekdays are allowed
    only when the course really meets twice that day.
    """

    course_id: str
    name: str
    start_date: date
    end_date: date
    schedule_days: Tuple[ScheduleDay, ...]
    room_id: str
    teacher_id: str
    status: CourseStatus = CourseStatus.PLANNED
    subject: str = ""

    def __post_init__(self) -> None:
        # Lists from callers are frozen into a tuple so the course stays hashable.
        if not isinstance(self.schedule_days, tuple):
            object.__setattr__(self, "schedule_days", tuple(self.schedule_days))

    def validate(self) -> None:
        """Raise :class:`InvalidScheduleDefinition` when the course is malformed."""

        if not str(self.course_id or "").strip():
            raise InvalidScheduleDefinition("Course identifier is required")
        if self.start_date is None or self.end_date is None:
            raise InvalidScheduleDefinition(f"Course {self.course_id} needs a start and end date")
        if self.end_date < self.start_date:
            raise InvalidScheduleDefinition(
                f"Course {self.course_id} ends ({self.end_date}) before it starts ({self.start_date})"
            )
        if not self.schedule_days:
            raise InvalidScheduleDefinition(f"Course {self.course_id} has no schedule days")
        for day in self.schedule_days:
            day.validate()
        if not str(self.room_id or "").strip():
            raise InvalidScheduleDefinition(f"Course {self.course_id} has no classroom")
        if not str(self.teacher_id or "").strip():
            raise InvalidScheduleDefinition(f"Course {self.course_id} has no teacher")

    def with_status(self, status: CourseStatus) -> "Course":
        return replace(self, status=status)

    def is_date_within_range(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def overlaps_date_range(self, other: "Course") -> bool:
        return not (self.end_date < other.start_date or self.start_date > other.end_date)

    def total_sessions(self) -> int:
        """Number of meetings in the date range, ignoring holidays."""
        from .recurrence import weekday_occurrences

        if self.end_date < self.start_date:
            return 0
        return sum(
            weekday_occurrences(self.start_date, self.end_date, [day.weekday])
            for day in self.schedule_days
        )

    def total_hours(self) -> float:
        if self.end_date < self.start_date:
            return 0.0
        from .recurrence import weekday_occurrences

        minutes = 0
        for day in self.schedule_days:
            minutes += day.duration_minutes * weekday_occurrences(
                self.start_date, self.end_date, [day.weekday]
            )
        return minutes / 60.0

    def days_of_week_as_string(self) -> str:
        seen = []
        for day in self.schedule_days:
            if day.weekday.short_name not in seen:
                seen.append(day.weekday.short_name)
        return ",".join(seen)

    @staticmethod
    def parse_days_of_week(text: str) -> Tuple[Weekday, ...]:
        """Parse ``"Mon,Wed,Fri"`` into distinct weekdays, keeping order."""

        days = []
        for part in re.split(r"[,;/ ]+", text or ""):
            if not part.strip():
                continue
            day = Weekday.parse(part)
            if day not in days:
                days.append(day)
        return tuple(days)

    @classmethod
    def weekly(
        cls,
        course_id: str,
        name: str,
        start_date: date,
        end_date: date,
        days: Iterable[object] | str,
        start_time: time,
        end_time: time,
        *,
        room_id: str,
        teacher_id: str,
        **kwargs: object,
    ) -> "Course":
        """Build a course that meets in the same time slot on every ``days``."""

        weekdays = cls.parse_days_of_week(days) if isinstance(days, str) else [Weekday.parse(d) for d in days]
        return cls(
            course_id=course_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            schedule_days=tuple(ScheduleDay(d, start_time, end_time) for d in weekdays),
            room_id=room_id,
            teacher_id=teacher_id,
            **kwargs,  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class ClassSession:
    """One dated occurrence of a course meeting."""

    session_id: str
    course_id: str
    session_date: date
    start_time: time
    end_time: time
    room_id: str
    teacher_id: str
    session_number: int = 1
    status: SessionStatus = SessionStatus.SCHEDULED

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.session_date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.session_date, self.end_time)

    @property
    def time_slot(self) -> str:
        return f"{self.start_time:%H:%M} - {self.end_time:%H:%M}"

    def overlaps(self, day: date, start: time, end: time) -> bool:
        """True when this session shares part of ``[start, end)`` on ``day``.

        Touching intervals (one ends when the other starts) do not overlap.
        """
        if self.status is SessionStatus.CANCELLED or self.session_date != day:
            return False
        return self.start_time < end and start < self.end_time


def _observed(month: int, day: int, year: int) -> date:
    # A recurring 29 February is observed on the 28th in common years.
    if month == 2 and day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return date(year, month, day)


@dataclass(frozen=True)
class Holiday:
    """A non-teaching day or inclusive range of days.

    When ``recurring`` is set only month and day matter and the holiday
    repeats every year; a range may wrap over New Year.
    """

    name: str
    start_date: date
    end_date: Optional[date] = None
    recurring: bool = False
    holiday_id: Optional[int] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.end_date is None:
            object.__setattr__(self, "end_date", self.start_date)
        if self.end_date < self.start_date and not self.recurring:
            raise InvalidScheduleDefinition(
                f"Holiday {self.name!r} ends before it starts"
            )

    def covers(self, day: date) -> bool:
        if not self.recurring:
            return self.start_date <= day <= self.end_date
        start = _observed(self.start_date.month, self.start_date.day, day.year)
        end = _observed(self.end_date.month, self.end_date.day, day.year)
        if start <= end:
            return start <= day <= end
        # Wraps the year boundary, e.g. 24 Dec - 2 Jan.
        return day >= start or day <= end


__all__ = [
    "Weekday",
    "CourseStatus",
    "SessionStatus",
    "ScheduleDay",
    "Course",
    "ClassSession",
    "Holiday",
]
