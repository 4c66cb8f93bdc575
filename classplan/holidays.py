"""Holiday lookup used to drop non-teaching days from a course schedule."""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Protocol

from .models import Holiday


class HolidayOracle(Protocol):
    """Anything that can tell whether a date is a non-teaching day."""

    def is_holiday(self, day: date) -> bool:
        ...


class HolidayCalendar:
    """In-memory holiday registry.

    Single-day holidays are kept in a dict keyed by date so the common lookup
    is constant time; ranges and recurring holidays are scanned.
    """

    def __init__(self, holidays: Iterable[Holiday] = ()) -> None:
        self._by_date: Dict[date, Holiday] = {}
        self._spans: List[Holiday] = []
        for holiday in holidays:
            self.add(holiday)

    def add(self, holiday: Holiday) -> None:
        if not holiday.recurring and holiday.start_date == holiday.end_date:
            self._by_date[holiday.start_date] = holiday
        else:
            self._spans.append(holiday)

    def holiday_on(self, day: date) -> Optional[Holiday]:
        """Return the holiday covering ``day`` or ``None``."""

        hit = self._by_date.get(day)
        if hit is not None:
            return hit
        for holiday in self._spans:
            if holiday.covers(day):
                return holiday
        return None

    def is_holiday(self, day: date) -> bool:
        return self.holiday_on(day) is not None

    def __len__(self) -> int:
        return len(self._by_date) + len(self._spans)

    def __iter__(self):
        yield from self._by_date.values()
        yield from self._spans


class NoHolidays:
    """Oracle for callers that do not track holidays."""

    def is_holiday(self, day: date) -> bool:
        return False


__all__ = ["HolidayOracle", "HolidayCalendar", "NoHolidays"]
