# Overview: Service-layer helpers for concurrency; row locks, SQLite write locks and bounded retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflictError


class StockConflict(Exception):
    """A guarded batch decrement matched no row: another checkout got there first."""

    def __init__(self, batch_id: int, quantity: int):
        super().__init__(f"batch {batch_id} no longer holds {quantity} units")
        self.batch_id = batch_id
        self.quantity = quantity


RETRYABLE_ERRORS = (OperationalError, StaleDataError, StockConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the database write lock up front on SQLite.

    Must be the first statement of the unit of work. Other engines rely on
    the row locks taken by UPDATE and SELECT ... FOR UPDATE.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with bounded retry on concurrency failures.

    Retries on OperationalError (deadlocks, busy database), StaleDataError
    (optimistic version conflicts) and StockConflict (guarded decrement
    lost a race). The session is rolled back before every retry, so func
    must redo its reads. After the last attempt ConcurrencyConflictError
    is raised. Any other exception propagates immediately.
    """
    attempts = max(1, attempts)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Concurrency conflict (attempt %d/%d): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    raise ConcurrencyConflictError(
        "Concurrent update conflict, please retry",
        details={"attempts": attempts, "reason": str(last_exc)},
    ) from last_exc
