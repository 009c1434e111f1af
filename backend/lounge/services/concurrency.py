# Overview: Service-layer helpers for concurrency; row locks, retries and conditional updates.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates, so a failed operation never leaves half its writes
    pending in the session.
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
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def compare_and_set(model, ident: int, field: str, expected, new) -> bool:
    """
    Conditional single-row UPDATE: set `field` to `new` only if it currently
    equals `expected`. Returns True when the row was changed.

    WHY: check-then-write in Python lets two requests both observe the old
    value. The WHERE clause makes the database arbitrate.

    Does not commit. The identity-map copy of the row (if loaded) is expired
    so the next attribute access sees the new value.
    """
    column = getattr(model, field)
    values = {column: new}
    version_col = getattr(model, "version_id", None)
    if version_col is not None:
        values[version_col] = version_col + 1

    updated = (
        db.session.query(model)
        .filter(model.id == ident, column == expected)
        .update(values, synchronize_session=False)
    )

    loaded = db.session.identity_map.get(db.session.identity_key(model, ident))
    if loaded is not None:
        db.session.expire(loaded)

    return updated == 1
