"""Runtime configuration read from the environment.

Explicit arguments always win; these helpers only supply the fallbacks, so
tests can point the store elsewhere with ``monkeypatch.setenv``.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

DEFAULT_DB_PATH = "classplan.db"
DEFAULT_TXN_TIMEOUT = 10.0


def db_path(path: Optional[str] = None) -> str:
    """Return ``path`` or ``CLASSPLAN_DB_PATH`` or :data:`DEFAULT_DB_PATH`."""
    return path or os.getenv("CLASSPLAN_DB_PATH", DEFAULT_DB_PATH)


def txn_timeout(timeout: Optional[float] = None) -> float:
    """Seconds a session transaction may wait for or hold the write lock."""
    if timeout is not None:
        return float(timeout)
    raw = os.getenv("CLASSPLAN_TXN_TIMEOUT")
    if not raw:
        return DEFAULT_TXN_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logging.warning("Ignoring invalid CLASSPLAN_TXN_TIMEOUT=%r", raw)
        return DEFAULT_TXN_TIMEOUT
    return value if value > 0 else DEFAULT_TXN_TIMEOUT


def holidays_csv_url() -> Optional[str]:
    return os.getenv("CLASSPLAN_HOLIDAYS_CSV_URL") or None


__all__ = ["DEFAULT_DB_PATH", "DEFAULT_TXN_TIMEOUT", "db_path", "txn_timeout", "holidays_csv_url"]
