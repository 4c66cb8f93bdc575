"""Course-to-sessions scheduling for the school timetable."""

from .coordinator import (
    ChangeEvent,
    ChangeKind,
    CourseSchedulingCoordinator,
    CreationOutcome,
    OutcomeKind,
)
from .errors import (
    InvalidScheduleDefinition,
    RoomConflict,
    ScheduleConflict,
    SchedulingError,
    StorageFailure,
    TeacherConflict,
)
from .generator import GenerationResult, generate
from .holidays import HolidayCalendar, NoHolidays
from .models import (
    ClassSession,
    Course,
    CourseStatus,
    Holiday,
    ScheduleDay,
    SessionStatus,
    Weekday,
)
from .recurrence import Candidate, expand

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "CourseSchedulingCoordinator",
    "CreationOutcome",
    "OutcomeKind",
    "InvalidScheduleDefinition",
    "RoomConflict",
    "ScheduleConflict",
    "SchedulingError",
    "StorageFailure",
    "TeacherConflict",
    "GenerationResult",
    "generate",
    "HolidayCalendar",
    "NoHolidays",
    "ClassSession",
    "Course",
    "CourseStatus",
    "Holiday",
    "ScheduleDay",
    "SessionStatus",
    "Weekday",
    "Candidate",
    "expand",
]
