"""Initialize the SQLite database for courses, sessions and holidays.

Optionally imports a holiday CSV (path or published sheet URL) given as the
first argument.
"""

import os
import sys
from pathlib import Path

from classplan.db import SQLiteHolidayOracle, init_db
from classplan.holiday_loading import load_holiday_calendar


def main() -> None:
    base_dir = Path(__file__).resolve().parents[1]
    db_path = os.getenv("CLASSPLAN_DB_PATH", str(base_dir / "classplan.db"))
    init_db(db_path)
    print(f"Initialized schedule store at {db_path}")

    if len(sys.argv) > 1:
        calendar = load_holiday_calendar(sys.argv[1])
        count = SQLiteHolidayOracle(db_path).add_many(calendar)
        print(f"Imported {count} holidays from {sys.argv[1]}")


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    main()
