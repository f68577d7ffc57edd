# Overview: Locking and retry helpers guarding the merge step against concurrent imports.

from __future__ import annotations

import threading
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# One merge at a time per process; the DB transaction covers cross-process writers.
SYNC_LOCK = threading.Lock()

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the rows an upsert is about to overwrite.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_serialized(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one merge under SYNC_LOCK.

    Lock timeouts and deadlocks (OperationalError) and stale rows
    (StaleDataError) are retried with exponential backoff. Each failed
    attempt is rolled back before the next; the last error propagates.
    """
    with SYNC_LOCK:
        for attempt in range(1, attempts + 1):
            try:
                return func()
            except RETRYABLE_ERRORS as exc:
                db.session.rollback()
                if attempt == attempts:
                    raise
                current_app.logger.warning(
                    "Merge attempt %s/%s failed (%s); retrying", attempt, attempts, exc.__class__.__name__
                )
                time.sleep(backoff_base * (2 ** (attempt - 1)))
