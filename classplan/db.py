"""SQLite persistence for courses, class sessions and holidays.

The database location can be configured either by passing a path to
``get_connection`` (and the stores that call it) or by setting the
``CLASSPLAN_DB_PATH`` environment variable.  By default a file named
``classplan.db`` in the current working directory is used.

Course rows are written by :class:`SQLiteCourseStore` in a self-contained
transaction.  Sessions are written by :class:`SQLiteSessionStore` inside an
explicit :class:`SessionTransaction`, which takes the database write lock
(``BEGIN IMMEDIATE``) before any availability read, so the overlap check and
the insert that follows cannot interleave with another writer.
"""

from __future__ import annotations

import logging
import sqlite3
import time as _time
from contextlib import closing, contextmanager
from datetime import date, time
from typing import Iterable, Iterator, List, Optional, Sequence

from . import config
from .errors import COURSE_PHASE, SESSIONS_PHASE, StorageFailure
from .models import (
    ClassSession,
    Course,
    CourseStatus,
    Holiday,
    ScheduleDay,
    SessionStatus,
    Weekday,
)

_LOG = logging.getLogger(__name__)

# Number of SQLite VM instructions between deadline checks.
_PROGRESS_STEPS = 1000


def get_connection(db_path: Optional[str] = None, timeout: Optional[float] = None) -> sqlite3.Connection:
    """Return a SQLite connection using the configured database path.

    If ``db_path`` is not provided it falls back to the ``CLASSPLAN_DB_PATH``
    environment variable and finally to ``DEFAULT_DB_PATH``.  ``timeout`` is
    how long to wait for another connection's lock.  The connection runs in
    autocommit mode; transactions are opened explicitly.
    """

    conn = sqlite3.connect(
        config.db_path(db_path),
        timeout=config.txn_timeout(timeout),
        check_same_thread=False,
        isolation_level=None,
    )
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: Optional[str] = None) -> None:
    """Initialise all required tables in the configured database."""

    with closing(get_connection(db_path)) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS courses (
                course_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                subject TEXT,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                days_of_week TEXT,
                room_id TEXT NOT NULL,
                teacher_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'planned'
            );

            CREATE TABLE IF NOT EXISTS course_schedule_days (
                course_id TEXT NOT NULL REFERENCES courses(course_id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                weekday INTEGER NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                PRIMARY KEY (course_id, position)
            );

            CREATE TABLE IF NOT EXISTS class_sessions (
                session_id TEXT PRIMARY KEY,
                course_id TEXT NOT NULL,
                session_date TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                room_id TEXT NOT NULL,
                teacher_id TEXT NOT NULL,
                session_number INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'scheduled'
            );
            CREATE INDEX IF NOT EXISTS idx_sessions_room_date
                ON class_sessions(room_id, session_date);
            CREATE INDEX IF NOT EXISTS idx_sessions_teacher_date
                ON class_sessions(teacher_id, session_date);
            CREATE INDEX IF NOT EXISTS idx_sessions_course
                ON class_sessions(course_id);

            CREATE TABLE IF NOT EXISTS holidays (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                recurring INTEGER NOT NULL DEFAULT 0
            );
            """
        )


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _course_from_rows(row: Sequence, day_rows: Iterable[Sequence]) -> Course:
    course_id, name, subject, start, end, room_id, teacher_id, status = row
    days = tuple(
        ScheduleDay(Weekday(weekday), time.fromisoformat(st), time.fromisoformat(et))
        for weekday, st, et in day_rows
    )
    return Course(
        course_id=course_id,
        name=name,
        start_date=date.fromisoformat(start),
        end_date=date.fromisoformat(end),
        schedule_days=days,
        room_id=room_id,
        teacher_id=teacher_id,
        status=CourseStatus(status),
        subject=subject or "",
    )


_SESSION_COLUMNS = (
    "session_id, course_id, session_date, start_time, end_time, "
    "room_id, teacher_id, session_number, status"
)


def _session_from_row(row: Sequence) -> ClassSession:
    sid, course_id, day, start, end, room_id, teacher_id, number, status = row
    return ClassSession(
        session_id=sid,
        course_id=course_id,
        session_date=date.fromisoformat(day),
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        room_id=room_id,
        teacher_id=teacher_id,
        session_number=int(number),
        status=SessionStatus(status),
    )


def _session_params(session: ClassSession) -> tuple:
    return (
        session.session_id,
        session.course_id,
        session.session_date.isoformat(),
        session.start_time.isoformat(),
        session.end_time.isoformat(),
        session.room_id,
        session.teacher_id,
        session.session_number,
        session.status.value,
    )


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


class SQLiteCourseStore:
    """Course header and schedule-day persistence."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path

    def save(self, course: Course) -> bool:
        """Insert ``course`` and its schedule days in one transaction.

        Returns ``False`` when a course with the same id already exists.
        Other database errors are raised as :class:`StorageFailure`.
        """

        try:
            with closing(get_connection(self.db_path)) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        """
                        INSERT INTO courses (course_id, name, subject, start_date, end_date,
                                             days_of_week, room_id, teacher_id, status)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            course.course_id,
                            course.name,
                            course.subject,
                            course.start_date.isoformat(),
                            course.end_date.isoformat(),
                            course.days_of_week_as_string(),
                            course.room_id,
                            course.teacher_id,
                            course.status.value,
                        ),
                    )
                    conn.executemany(
                        """
                        INSERT INTO course_schedule_days
                            (course_id, position, weekday, start_time, end_time)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        [
                            (
                                course.course_id,
                                position,
                                day.weekday.value,
                                day.start_time.isoformat(),
                                day.end_time.isoformat(),
                            )
                            for position, day in enumerate(course.schedule_days)
                        ],
                    )
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.IntegrityError as exc:
            logging.warning("Course %s was not saved: %s", course.course_id, exc)
            return False
        except sqlite3.Error as exc:
            logging.exception("Failed to save course %s", course.course_id)
            raise StorageFailure(
                COURSE_PHASE, f"Could not save course {course.course_id}: {exc}", course_id=course.course_id
            ) from exc
        return True

    def _load(self, conn: sqlite3.Connection, where: str = "", params: tuple = ()) -> List[Course]:
        rows = conn.execute(
            "SELECT course_id, name, subject, start_date, end_date, room_id, teacher_id, status "
            f"FROM courses {where} ORDER BY start_date, course_id",
            params,
        ).fetchall()
        courses = []
        for row in rows:
            day_rows = conn.execute(
                "SELECT weekday, start_time, end_time FROM course_schedule_days "
                "WHERE course_id = ? ORDER BY position",
                (row[0],),
            ).fetchall()
            courses.append(_course_from_rows(row, day_rows))
        return courses

    def find_by_id(self, course_id: str) -> Optional[Course]:
        with closing(get_connection(self.db_path)) as conn:
            found = self._load(conn, "WHERE course_id = ?", (course_id,))
        return found[0] if found else None

    def find_all(self) -> List[Course]:
        with closing(get_connection(self.db_path)) as conn:
            return self._load(conn)

    def find_ending_on_or_after(self, day: date) -> List[Course]:
        with closing(get_connection(self.db_path)) as conn:
            return self._load(
                conn,
                "WHERE end_date >= ? AND status != ?",
                (day.isoformat(), CourseStatus.CANCELLED.value),
            )

    def delete(self, course_id: str) -> bool:
        """Delete the course row; its sessions are left to the caller."""

        with closing(get_connection(self.db_path)) as conn:
            cur = conn.execute("DELETE FROM courses WHERE course_id = ?", (course_id,))
            return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionTransaction:
    """An open write transaction on the session tables.

    The write lock is taken on creation.  Statements running past the
    deadline are interrupted by SQLite and surface as ``OperationalError``.
    """

    def __init__(self, conn: sqlite3.Connection, timeout: float) -> None:
        self.connection = conn
        self.timeout = timeout
        self._deadline = _time.monotonic() + timeout
        self._open = False
        conn.set_progress_handler(self._past_deadline, _PROGRESS_STEPS)
        conn.execute("BEGIN IMMEDIATE")
        self._open = True

    def _past_deadline(self) -> int:
        return 1 if _time.monotonic() > self._deadline else 0

    def check_deadline(self) -> None:
        """Raise ``OperationalError`` once the transaction outlived its timeout.

        The progress handler only fires inside long statements; this covers
        the time spent between statements.
        """
        if self._past_deadline():
            raise sqlite3.OperationalError(
                f"Session transaction exceeded its {self.timeout:g}s timeout"
            )

    @property
    def active(self) -> bool:
        return self._open

    def commit(self) -> None:
        if not self._open:
            raise RuntimeError("Transaction is no longer active")
        self.check_deadline()
        self.connection.execute("COMMIT")
        self._open = False

    def rollback(self) -> None:
        if not self._open:
            return
        # The deadline must not block the rollback itself.
        self.connection.set_progress_handler(None, 0)
        try:
            # An interrupted write may already have rolled SQLite back.
            if self.connection.in_transaction:
                self.connection.execute("ROLLBACK")
        finally:
            self._open = False

    def close(self) -> None:
        try:
            self.rollback()
        finally:
            self.connection.close()


class SQLiteAvailability:
    """Availability index reading through an open session transaction."""

    def __init__(self, txn: SessionTransaction) -> None:
        self._txn = txn

    def _find(self, column: str, resource_id: str, day: date, start: time, end: time) -> Optional[str]:
        self._txn.check_deadline()
        row = self._txn.connection.execute(
            f"""
            SELECT session_id FROM class_sessions
            WHERE {column} = ? AND session_date = ? AND status = ?
              AND start_time < ? AND end_time > ?
            ORDER BY start_time LIMIT 1
            """,
            (
                resource_id,
                day.isoformat(),
                SessionStatus.SCHEDULED.value,
                end.isoformat(),
                start.isoformat(),
            ),
        ).fetchone()
        return row[0] if row else None

    def find_room_overlap(self, room_id: str, day: date, start: time, end: time) -> Optional[str]:
        return self._find("room_id", room_id, day, start, end)

    def find_teacher_overlap(self, teacher_id: str, day: date, start: time, end: time) -> Optional[str]:
        return self._find("teacher_id", teacher_id, day, start, end)


class SQLiteSessionStore:
    """Class-session persistence with explicit transactions."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path

    def begin_transaction(self, timeout: Optional[float] = None) -> SessionTransaction:
        """Open a session transaction holding the database write lock.

        Raises :class:`StorageFailure` if the lock cannot be taken within
        ``timeout`` seconds.
        """

        limit = config.txn_timeout(timeout)
        conn = get_connection(self.db_path, timeout=limit)
        try:
            return SessionTransaction(conn, limit)
        except sqlite3.Error as exc:
            conn.close()
            logging.exception("Could not open session transaction")
            raise StorageFailure(SESSIONS_PHASE, f"Could not start session transaction: {exc}") from exc

    @contextmanager
    def transaction(self, timeout: Optional[float] = None) -> Iterator[SessionTransaction]:
        """Context manager around :meth:`begin_transaction`.

        Anything not committed explicitly is rolled back on exit, including
        when the block raises.
        """

        txn = self.begin_transaction(timeout)
        try:
            yield txn
        finally:
            txn.close()

    def availability(self, txn: SessionTransaction) -> SQLiteAvailability:
        return SQLiteAvailability(txn)

    def bulk_insert(self, sessions: Sequence[ClassSession], txn: SessionTransaction) -> None:
        txn.check_deadline()
        txn.connection.executemany(
            f"INSERT INTO class_sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [_session_params(s) for s in sessions],
        )

    def delete_by_course(self, course_id: str, txn: SessionTransaction) -> int:
        txn.check_deadline()
        cur = txn.connection.execute("DELETE FROM class_sessions WHERE course_id = ?", (course_id,))
        return cur.rowcount

    def _query(self, where: str, params: tuple) -> List[ClassSession]:
        with closing(get_connection(self.db_path)) as conn:
            rows = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM class_sessions {where} "
                "ORDER BY session_date, start_time, session_id",
                params,
            ).fetchall()
        return [_session_from_row(r) for r in rows]

    def find_by_course(self, course_id: str) -> List[ClassSession]:
        return self._query("WHERE course_id = ?", (course_id,))

    def find_by_room(self, room_id: str, day: Optional[date] = None) -> List[ClassSession]:
        if day is None:
            return self._query("WHERE room_id = ?", (room_id,))
        return self._query("WHERE room_id = ? AND session_date = ?", (room_id, day.isoformat()))

    def find_by_date_range(self, start: date, end: date) -> List[ClassSession]:
        return self._query("WHERE session_date BETWEEN ? AND ?", (start.isoformat(), end.isoformat()))

    def count_by_course(self, course_id: str) -> int:
        with closing(get_connection(self.db_path)) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM class_sessions WHERE course_id = ?", (course_id,)
            ).fetchone()
        return row[0] if row else 0


# ---------------------------------------------------------------------------
# Holidays
# ---------------------------------------------------------------------------


class SQLiteHolidayOracle:
    """Holiday lookup backed by the ``holidays`` table."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path

    def add(self, holiday: Holiday) -> Holiday:
        with closing(get_connection(self.db_path)) as conn:
            cur = conn.execute(
                "INSERT INTO holidays (name, start_date, end_date, recurring) VALUES (?, ?, ?, ?)",
                (
                    holiday.name,
                    holiday.start_date.isoformat(),
                    holiday.end_date.isoformat(),
                    int(holiday.recurring),
                ),
            )
            new_id = cur.lastrowid
        return Holiday(holiday.name, holiday.start_date, holiday.end_date, holiday.recurring, holiday_id=new_id)

    def add_many(self, holidays: Iterable[Holiday]) -> int:
        count = 0
        for holiday in holidays:
            self.add(holiday)
            count += 1
        return count

    def delete(self, holiday_id: int) -> bool:
        with closing(get_connection(self.db_path)) as conn:
            cur = conn.execute("DELETE FROM holidays WHERE id = ?", (holiday_id,))
            return cur.rowcount > 0

    def find_all(self) -> List[Holiday]:
        with closing(get_connection(self.db_path)) as conn:
            rows = conn.execute(
                "SELECT id, name, start_date, end_date, recurring FROM holidays ORDER BY start_date"
            ).fetchall()
        return [
            Holiday(name, date.fromisoformat(start), date.fromisoformat(end), bool(rec), holiday_id=hid)
            for hid, name, start, end, rec in rows
        ]

    def is_holiday(self, day: date) -> bool:
        with closing(get_connection(self.db_path)) as conn:
            row = conn.execute(
                "SELECT 1 FROM holidays WHERE recurring = 0 AND start_date <= ? AND end_date >= ? LIMIT 1",
                (day.isoformat(), day.isoformat()),
            ).fetchone()
            if row:
                return True
            recurring = conn.execute(
                "SELECT name, start_date, end_date FROM holidays WHERE recurring = 1"
            ).fetchall()
        return any(
            Holiday(name, date.fromisoformat(start), date.fromisoformat(end), True).covers(day)
            for name, start, end in recurring
        )


__all__ = [
    "get_connection",
    "init_db",
    "SQLiteCourseStore",
    "SQLiteSessionStore",
    "SQLiteAvailability",
    "SQLiteHolidayOracle",
    "SessionTransaction",
]
