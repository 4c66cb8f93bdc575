import os
import sqlite3
from datetime import date, time

import pytest

from classplan import db
from classplan.errors import StorageFailure
from classplan.models import ClassSession, Course, CourseStatus, Holiday, SessionStatus, Weekday


def _course(course_id="A1-01", days="Mon,Wed,Fri", **kwargs):
    return Course.weekly(
        course_id,
        "German A1",
        date(2024, 1, 1),
        date(2024, 1, 12),
        days,
        time(9),
        time(10),
        room_id=kwargs.pop("room_id", "101"),
        teacher_id=kwargs.pop("teacher_id", "T1"),
        **kwargs,
    )


def _session(session_id, day=date(2024, 2, 6), start=time(8), end=time(10), room="101", teacher="T1",
             status=SessionStatus.SCHEDULED, course_id="X"):
    return ClassSession(session_id, course_id, day, start, end, room, teacher, 1, status)


@pytest.fixture
def db_file(tmp_path):
    path = str(tmp_path / "schedule.db")
    db.init_db(db_path=path)
    return path


def test_get_connection_env_var(tmp_path, monkeypatch):
    env_db = tmp_path / "env.db"
    monkeypatch.setenv("CLASSPLAN_DB_PATH", str(env_db))
    conn = db.get_connection()
    try:
        conn.execute("CREATE TABLE t (id INTEGER)")
    finally:
        conn.close()
    assert os.path.exists(env_db)


def test_init_db_is_idempotent(db_file):
    db.init_db(db_path=db_file)
    assert db.SQLiteCourseStore(db_file).find_all() == []


def test_course_round_trip(db_file):
    store = db.SQLiteCourseStore(db_file)
    course = _course(subject="German", status=CourseStatus.ACTIVE)

    assert store.save(course) is True

    loaded = store.find_by_id("A1-01")
    assert loaded == course
    assert [d.weekday for d in loaded.schedule_days] == [Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY]
    assert store.find_by_id("missing") is None


def test_duplicate_course_is_not_saved(db_file):
    store = db.SQLiteCourseStore(db_file)
    assert store.save(_course()) is True
    assert store.save(_course(days="Tue")) is False

    assert len(store.find_all()) == 1
    assert store.find_by_id("A1-01").days_of_week_as_string() == "Mon,Wed,Fri"


def test_save_raises_storage_failure_without_schema(tmp_path):
    store = db.SQLiteCourseStore(str(tmp_path / "empty.db"))
    with pytest.raises(StorageFailure) as excinfo:
        store.save(_course())
    assert excinfo.value.phase == "course"


def test_find_ending_on_or_after_skips_cancelled(db_file):
    store = db.SQLiteCourseStore(db_file)
    store.save(_course("A"))
    store.save(_course("B", status=CourseStatus.CANCELLED))

    assert [c.course_id for c in store.find_ending_on_or_after(date(2024, 1, 10))] == ["A"]
    assert store.find_ending_on_or_after(date(2024, 1, 13)) == []


def test_delete_course(db_file):
    store = db.SQLiteCourseStore(db_file)
    store.save(_course())
    assert store.delete("A1-01") is True
    assert store.delete("A1-01") is False
    assert store.find_by_id("A1-01") is None


def test_session_insert_and_queries(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    with sessions.transaction() as txn:
        sessions.bulk_insert(
            [
                _session("S1"),
                _session("S2", day=date(2024, 2, 7), room="202"),
                _session("S3", day=date(2024, 2, 13), course_id="Y"),
            ],
            txn,
        )
        txn.commit()

    assert [s.session_id for s in sessions.find_by_course("X")] == ["S1", "S2"]
    assert sessions.count_by_course("Y") == 1
    assert [s.session_id for s in sessions.find_by_room("101")] == ["S1", "S3"]
    assert [s.session_id for s in sessions.find_by_room("101", date(2024, 2, 6))] == ["S1"]
    assert [s.session_id for s in sessions.find_by_date_range(date(2024, 2, 6), date(2024, 2, 7))] == ["S1", "S2"]
    assert sessions.find_by_course("X")[0] == _session("S1")


def test_uncommitted_transaction_is_rolled_back(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    with sessions.transaction() as txn:
        sessions.bulk_insert([_session("S1")], txn)

    assert sessions.count_by_course("X") == 0


def test_transaction_rolls_back_when_block_raises(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    with pytest.raises(RuntimeError):
        with sessions.transaction() as txn:
            sessions.bulk_insert([_session("S1")], txn)
            raise RuntimeError("boom")

    assert sessions.count_by_course("X") == 0


def test_commit_twice_is_an_error(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    with sessions.transaction() as txn:
        txn.commit()
        assert not txn.active
        with pytest.raises(RuntimeError):
            txn.commit()


def test_delete_by_course(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    with sessions.transaction() as txn:
        sessions.bulk_insert([_session("S1"), _session("S2", day=date(2024, 2, 13))], txn)
        txn.commit()
    with sessions.transaction() as txn:
        assert sessions.delete_by_course("X", txn) == 2
        txn.commit()

    assert sessions.count_by_course("X") == 0


def test_availability_sees_overlaps_only(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    with sessions.transaction() as txn:
        sessions.bulk_insert(
            [_session("S1"), _session("S2", start=time(12), end=time(13), status=SessionStatus.CANCELLED)],
            txn,
        )
        txn.commit()

    with sessions.transaction() as txn:
        index = sessions.availability(txn)
        day = date(2024, 2, 6)
        assert index.find_room_overlap("101", day, time(9), time(11)) == "S1"
        assert index.find_teacher_overlap("T1", day, time(7), time(8, 30)) == "S1"
        assert index.find_room_overlap("101", day, time(10), time(11)) is None
        assert index.find_room_overlap("101", day, time(12), time(13)) is None
        assert index.find_room_overlap("202", day, time(9), time(11)) is None
        assert index.find_room_overlap("101", date(2024, 2, 7), time(9), time(11)) is None


def test_transaction_times_out_while_another_writer_holds_the_lock(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    holder = sessions.begin_transaction(timeout=5)
    try:
        with pytest.raises(StorageFailure) as excinfo:
            sessions.begin_transaction(timeout=0.2)
        assert excinfo.value.phase == "sessions"
    finally:
        holder.close()

    with sessions.transaction(timeout=0.2) as txn:
        assert txn.active


def test_holiday_oracle(db_file):
    oracle = db.SQLiteHolidayOracle(db_file)
    training = oracle.add(Holiday("Staff training", date(2024, 1, 8)))
    assert oracle.add_many(
        [
            Holiday("Easter break", date(2024, 3, 25), date(2024, 4, 5)),
            Holiday("Christmas", date(2000, 12, 25), recurring=True),
        ]
    ) == 2

    assert training.holiday_id is not None
    assert oracle.is_holiday(date(2024, 1, 8))
    assert oracle.is_holiday(date(2024, 4, 1))
    assert oracle.is_holiday(date(2027, 12, 25))
    assert not oracle.is_holiday(date(2024, 1, 9))
    assert [h.name for h in oracle.find_all()] == ["Christmas", "Staff training", "Easter break"]

    assert oracle.delete(training.holiday_id) is True
    assert not oracle.is_holiday(date(2024, 1, 8))


def test_rollback_after_sqlite_already_ended_the_transaction(db_file):
    sessions = db.SQLiteSessionStore(db_file)
    txn = sessions.begin_transaction()
    sessions.bulk_insert([_session("S1")], txn)
    txn.connection.execute("ROLLBACK")

    txn.rollback()

    assert not txn.active
    txn.close()
    assert sessions.count_by_course("X") == 0


def test_statements_past_the_deadline_are_refused(db_file):
    sessions = db.SQLiteSessionStore(db_file)

    with sessions.transaction(timeout=5) as txn:
        txn.check_deadline()
        txn._deadline -= 10
        with pytest.raises(sqlite3.OperationalError):
            sessions.bulk_insert([_session("S1")], txn)
        with pytest.raises(sqlite3.OperationalError):
            sessions.availability(txn).find_room_overlap("101", date(2024, 2, 6), time(8), time(10))
        with pytest.raises(sqlite3.OperationalError):
            txn.commit()
        assert txn.active

    assert sessions.count_by_course("X") == 0
