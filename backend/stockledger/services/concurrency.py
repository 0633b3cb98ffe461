# Overview: Transaction helpers for ledger writes: row locks, optimistic-lock retry, rollback on failure.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentModificationError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns on items, operations and logs catch the conflict at flush time.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Run one ledger transaction, re-running it from the top on concurrency
    failures.

    - OperationalError (deadlock, lock timeout) and StaleDataError (a
      concurrent writer bumped version_id first) roll back and retry; the
      retry re-reads rows and re-validates, so a sale that no longer has
      stock fails with InsufficientStockError on the second pass.
    - Once attempts are exhausted ConcurrentModificationError is raised.
    - Any other exception rolls the session back and propagates unchanged,
      so no partial state is ever committed.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Giving up after %d attempts on concurrent modification: %s", attempts, exc
                )
                raise ConcurrentModificationError(
                    "The records were modified by another request. Please retry."
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ConcurrentModificationError("The records were modified by another request. Please retry.")
