"""Expand a weekly course schedule into candidate session dates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Iterator, Sequence

from .errors import InvalidScheduleDefinition
from .holidays import HolidayOracle
from .models import ScheduleDay, Weekday

_LOG = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class Candidate:
    """A date on which one of the course's schedule days falls."""

    session_date: date
    schedule_day: ScheduleDay


def _iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += _ONE_DAY


def weekday_occurrences(start_date: date, end_date: date, weekdays: Iterable[Weekday]) -> int:
    """Count dates in ``[start_date, end_date]`` that fall on ``weekdays``.

    Each weekday is counted once even if listed twice.
    """
    wanted = {Weekday.parse(d).value for d in weekdays}
    if not wanted or end_date < start_date:
        return 0
    total_days = (end_date - start_date).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * len(wanted)
    first = start_date.weekday()
    for offset in range(remainder):
        if (first + offset) % 7 in wanted:
            count += 1
    return count


class Expansion:
    """Lazy, restartable sequence of :class:`Candidate` dates.

    Iterating walks the calendar from start to end; each new iteration starts
    over, so the same object can be consumed more than once.
    """

    def __init__(
        self,
        start_date: date,
        end_date: date,
        schedule_days: Sequence[ScheduleDay],
        holiday_oracle: HolidayOracle,
    ) -> None:
        self.start_date = start_date
        self.end_date = end_date
        self.schedule_days = tuple(schedule_days)
        self.holiday_oracle = holiday_oracle

    def __iter__(self) -> Iterator[Candidate]:
        by_weekday = {}
        for day in self.schedule_days:
            by_weekday.setdefault(day.weekday, []).append(day)

        for current in _iter_dates(self.start_date, self.end_date):
            matching = by_weekday.get(Weekday.of(current))
            if not matching:
                continue
            if self.holiday_oracle.is_holiday(current):
                _LOG.debug("Skipping %s: holiday", current.isoformat())
                continue
            for schedule_day in matching:
                yield Candidate(current, schedule_day)

    def __repr__(self) -> str:
        return (
            f"Expansion({self.start_date.isoformat()}..{self.end_date.isoformat()}, "
            f"{len(self.schedule_days)} schedule days)"
        )


def expand(
    start_date: date,
    end_date: date,
    schedule_days: Sequence[ScheduleDay],
    holiday_oracle: HolidayOracle,
) -> Expansion:
    """Return the candidate dates for a weekly schedule.

    Candidates are ordered by date, then by the order ``schedule_days`` were
    declared.  Dates reported by ``holiday_oracle`` are left out for every
    schedule day.

    Raises
    ------
    InvalidScheduleDefinition
        If the range is inverted, no schedule day is given, or a schedule day
        starts at or after its end.
    """
    if start_date is None or end_date is None:
        raise InvalidScheduleDefinition("Start and end date are required")
    if end_date < start_date:
        raise InvalidScheduleDefinition(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )
    if not schedule_days:
        raise InvalidScheduleDefinition("At least one schedule day is required")
    for schedule_day in schedule_days:
        schedule_day.validate()
    return Expansion(start_date, end_date, schedule_days, holiday_oracle)


__all__ = ["Candidate", "Expansion", "expand", "weekday_occurrences"]
