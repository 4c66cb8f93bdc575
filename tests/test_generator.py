from datetime import date, time

from classplan.availability import ROOM, TEACHER, SessionAvailability, has_overlap
from classplan.errors import RoomConflict, TeacherConflict
from classplan.generator import generate, session_id_for
from classplan.holidays import NoHolidays
from classplan.models import ClassSession, Course, ScheduleDay, SessionStatus, Weekday
from classplan.recurrence import expand


def _course(course_id="Y", days=("Tue",), start=time(8), end=time(10), room="101", teacher="T2",
            first=date(2024, 2, 1), last=date(2024, 2, 29)):
    return Course.weekly(course_id, "German B1", first, last, list(days), start, end,
                         room_id=room, teacher_id=teacher)


def _existing(session_id="SESS_X_20240206_001", room="101", teacher="T1", day=date(2024, 2, 6),
              start=time(8), end=time(10), status=SessionStatus.SCHEDULED):
    return ClassSession(session_id, "X", day, start, end, room, teacher, 1, status)


def _candidates(course):
    return expand(course.start_date, course.end_date, course.schedule_days, NoHolidays())


def test_room_conflict_names_date_room_and_existing_session():
    course = _course()
    availability = SessionAvailability([_existing()])

    result = generate(course, _candidates(course), availability)

    assert result.sessions == []
    assert not result.ok
    assert isinstance(result.conflict, RoomConflict)
    assert result.conflict.conflict_date == date(2024, 2, 6)
    assert result.conflict.room_id == "101"
    assert result.conflict.existing_session_id == "SESS_X_20240206_001"
    assert "2024-02-06" in str(result.conflict)


def test_back_to_back_sessions_do_not_conflict():
    course = _course(start=time(10), end=time(12))
    availability = SessionAvailability([_existing()])

    result = generate(course, _candidates(course), availability)

    assert result.ok
    assert len(result.sessions) == 4


def test_teacher_conflict_in_another_room():
    course = _course(room="202", teacher="T1")
    availability = SessionAvailability([_existing()])

    result = generate(course, _candidates(course), availability)

    assert isinstance(result.conflict, TeacherConflict)
    assert result.conflict.teacher_id == "T1"
    assert result.sessions == []


def test_cancelled_session_frees_the_room():
    course = _course()
    availability = SessionAvailability([_existing(status=SessionStatus.CANCELLED)])

    result = generate(course, _candidates(course), availability)

    assert result.ok
    assert [s.session_date.day for s in result.sessions] == [6, 13, 20, 27]


def test_overlapping_slots_of_the_same_course_conflict():
    course = Course(
        "Z",
        "Double Monday",
        date(2024, 1, 1),
        date(2024, 1, 7),
        (
            ScheduleDay(Weekday.MONDAY, time(9), time(11)),
            ScheduleDay(Weekday.MONDAY, time(10), time(12)),
        ),
        room_id="101",
        teacher_id="T1",
    )

    result = generate(course, _candidates(course), SessionAvailability())

    assert isinstance(result.conflict, RoomConflict)
    assert result.conflict.existing_session_id == "SESS_Z_20240101_001"


def test_sessions_copy_course_and_slot_details():
    course = _course(course_id="A1-Bonn", days=("Mon", "Wed"), start=time(11), end=time(12),
                     first=date(2024, 1, 1), last=date(2024, 1, 10))

    result = generate(course, _candidates(course), SessionAvailability())

    assert [s.session_id for s in result.sessions] == [
        "SESS_A1-Bonn_20240101_001",
        "SESS_A1-Bonn_20240103_002",
        "SESS_A1-Bonn_20240108_003",
        "SESS_A1-Bonn_20240110_004",
    ]
    first = result.sessions[0]
    assert first.course_id == "A1-Bonn"
    assert first.room_id == "101"
    assert first.teacher_id == "T2"
    assert first.time_slot == "11:00 - 12:00"
    assert first.session_number == 1
    assert first.status is SessionStatus.SCHEDULED


def test_no_candidates_is_success_with_no_sessions():
    course = _course()
    result = generate(course, [], SessionAvailability())
    assert result.ok
    assert result.sessions == []


def test_generation_is_repeatable_in_identifier_space():
    course = _course()
    first = generate(course, _candidates(course), SessionAvailability())
    second = generate(course, _candidates(course), SessionAvailability())
    assert [s.session_id for s in first.sessions] == [s.session_id for s in second.sessions]


def test_session_id_format():
    assert session_id_for("A1 Bonn/2024", date(2024, 1, 8), 4) == "SESS_A1 Bonn/2024_20240108_004"


def test_session_ids_differ_for_course_ids_that_differ_only_in_punctuation():
    day = date(2024, 1, 1)
    ids = {session_id_for(cid, day, 1) for cid in ("CS-101", "CS101", "CS_101", "A_1", "A1")}
    assert len(ids) == 5


def test_has_overlap_reports_the_blocking_session():
    availability = SessionAvailability([_existing()])

    assert has_overlap(availability, ROOM, "101", date(2024, 2, 6), time(9), time(11)) == (
        True,
        "SESS_X_20240206_001",
    )
    assert has_overlap(availability, TEACHER, "T9", date(2024, 2, 6), time(9), time(11)) == (False, None)
