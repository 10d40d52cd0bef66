# Overview: Transaction and retry helpers shared by the ledger-facing services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute one unit of work as a single transaction.

    func must do all of its writes and call db.session.commit() last.
    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic version conflicts). Any other exception rolls the whole
    session back before propagating, so no partial change survives.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)

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
                "Retrying unit of work after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def conditional_flip(model, row_id: int, flag, **required) -> bool:
    """
    Compare-and-swap a boolean flag from False to True.

    Issues UPDATE ... SET flag = true WHERE id = :row_id AND flag = false
    [AND <required> = <value> ...] and reports whether exactly one row
    changed. A False return means another attempt already flipped it (or a
    precondition did not hold) and the guarded side effect must be skipped.
    """
    query = db.session.query(model).filter(model.id == row_id, flag.is_(False))
    for column, value in required.items():
        query = query.filter(getattr(model, column) == value)
    changed = query.update({flag: True}, synchronize_session=False)
    return changed == 1
