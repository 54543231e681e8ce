# Overview: Service-layer helpers for row locking, savepoints and retry on concurrency failures.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query, *, skip_locked: bool = False):
    """
    Apply row-level locking for critical operations.

    skip_locked lets background sweeps pass over rows a live request holds.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    if skip_locked and db.session.get_bind().dialect.name == "postgresql":
        return query.with_for_update(skip_locked=True)
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate immediately after
    rolling back the session, so a failed call never leaves half-applied
    ledger or cart changes behind.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrency conflict (attempt %s/%s): %s", attempt + 1, attempts, exc.__class__.__name__
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


@contextmanager
def savepoint():
    """
    Run a block inside a SAVEPOINT.

    On error only the block's work is rolled back; the outer transaction
    stays usable and the error is re-raised for the caller to record.
    """
    nested = db.session.begin_nested()
    try:
        yield
    except Exception:
        nested.rollback()
        raise
    else:
        nested.commit()
