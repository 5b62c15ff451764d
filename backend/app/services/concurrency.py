# Overview: Row locking and retry helpers for grant store writes.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write on a grant row.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers at the
    database level instead); MySQL and PostgreSQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a whole read-modify-write operation, retrying on lock failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError.
    func must re-read its rows on every attempt.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
