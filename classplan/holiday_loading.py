"""Holiday roster loading.

Schools usually keep their holiday list in a spreadsheet.  These helpers
read it from a CSV file or a published Google Sheet CSV link and turn the
rows into :class:`~classplan.models.Holiday` objects.
"""

from __future__ import annotations

import io
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd
import requests

from . import config
from .holidays import HolidayCalendar
from .models import Holiday

_REQUEST_HEADERS = {
    # Helps avoid cached intermediaries
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "User-Agent": "Mozilla/5.0 (compatible; classplan/1.0)",
}

_COLUMN_ALIASES = {
    "Name": ["name", "holiday", "title", "description", "holiday_name"],
    "Start": ["start", "start_date", "startdate", "date", "from", "begin"],
    "End": ["end", "end_date", "enddate", "to", "until"],
    "Recurring": ["recurring", "yearly", "annual", "repeat", "repeats"],
}

_TRUE_VALUES = {"1", "true", "yes", "y", "x", "yearly", "annual"}


def _parse_date(value: object) -> Optional[date]:
    text = str(value or "").strip()
    if not text or text.lower() in ("nan", "none", "nat"):
        return None
    for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%m/%d/%Y", "%d-%m-%Y"):
        try:
            return pd.to_datetime(text, format=fmt, errors="raise").date()
        except (ValueError, TypeError):
            continue
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isnull(parsed):
        return None
    return parsed.date()


def _apply_aliases(df: pd.DataFrame) -> pd.DataFrame:
    lower_cols = {c.lower(): c for c in df.columns}
    renames = {}
    for canonical, aliases in _COLUMN_ALIASES.items():
        if canonical in df.columns:
            continue
        for alias in aliases:
            if alias in lower_cols:
                renames[lower_cols[alias]] = canonical
                break
    return df.rename(columns=renames)


def load_holidays_frame(csv_text: str) -> pd.DataFrame:
    """Parse holiday CSV text into a normalised DataFrame.

    The result has ``Name``, ``Start``, ``End`` (``datetime.date``) and
    ``Recurring`` (bool) columns.  Rows without a usable start date are
    dropped; a missing end date means a single-day holiday.

    Raises
    ------
    pd.errors.ParserError | ValueError
    """
    df = pd.read_csv(
        io.StringIO(csv_text),
        dtype=str,
        keep_default_na=True,
        na_values=["", " ", "nan", "NaN", "None"],
    )
    df.columns = df.columns.str.strip().str.replace(" ", "_", regex=False)
    df = _apply_aliases(df)

    if "Start" not in df.columns:
        supported = ", ".join(["Start"] + _COLUMN_ALIASES["Start"])
        raise ValueError(
            "Holiday sheet is missing a start date column. "
            f"Supported column names: {supported}"
        )

    # Strip whitespace in all string columns
    for col in df.columns:
        s = df[col]
        df[col] = s.where(s.isna(), s.astype(str).str.strip())

    df["Start"] = df["Start"].apply(_parse_date)
    before = len(df)
    df = df[df["Start"].notna()].copy()
    if len(df) < before:
        logging.warning("Dropped %s holiday rows without a valid start date", before - len(df))

    if "End" in df.columns:
        ends = df["End"].apply(_parse_date)
        df["End"] = ends.where(ends.notna(), df["Start"])
    else:
        df["End"] = df["Start"]

    if "Name" not in df.columns:
        df["Name"] = "Holiday"
    df["Name"] = df["Name"].fillna("Holiday")

    if "Recurring" in df.columns:
        df["Recurring"] = df["Recurring"].fillna("").str.lower().isin(_TRUE_VALUES)
    else:
        df["Recurring"] = False

    return df[["Name", "Start", "End", "Recurring"]].reset_index(drop=True)


def holidays_from_frame(df: pd.DataFrame) -> List[Holiday]:
    holidays: List[Holiday] = []
    for row in df.itertuples(index=False):
        end = row.End
        if end < row.Start and not row.Recurring:
            logging.warning("Skipping holiday %r: ends before it starts", row.Name)
            continue
        holidays.append(Holiday(str(row.Name), row.Start, end, bool(row.Recurring)))
    return holidays


def fetch_holidays(url: str, timeout: float = 12) -> List[Holiday]:
    """Download a holiday CSV from ``url``.

    Raises
    ------
    requests.RequestException | pd.errors.ParserError | ValueError
    """
    try:
        resp = requests.get(url, timeout=timeout, headers=_REQUEST_HEADERS)
        resp.raise_for_status()
        txt = resp.text
        # Guard against HTML interstitials (private sheet / auth / rate limit)
        if "<html" in txt[:512].lower():
            raise ValueError("Expected CSV, got HTML (check sheet privacy/sharing).")
        df = load_holidays_frame(txt)
    except (requests.RequestException, pd.errors.ParserError, ValueError):
        logging.exception("Could not load holidays from %s", url)
        raise
    return holidays_from_frame(df)


def load_holiday_calendar(source: Union[str, Path, None] = None) -> HolidayCalendar:
    """Build a :class:`HolidayCalendar` from a CSV path or URL.

    With no ``source`` the ``CLASSPLAN_HOLIDAYS_CSV_URL`` setting is used;
    when that is unset too the calendar is empty.
    """
    if source is None:
        source = config.holidays_csv_url()
        if source is None:
            return HolidayCalendar()

    text = str(source)
    if text.startswith(("http://", "https://")):
        return HolidayCalendar(fetch_holidays(text))

    path = Path(source)
    df = load_holidays_frame(path.read_text(encoding="utf-8"))
    return HolidayCalendar(holidays_from_frame(df))


__all__ = [
    "load_holidays_frame",
    "holidays_from_frame",
    "fetch_holidays",
    "load_holiday_calendar",
]
