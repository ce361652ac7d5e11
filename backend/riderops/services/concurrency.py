# Overview: Service-layer operations for concurrency; locking and bounded retry of read-modify-write units.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError

logger = logging.getLogger(__name__)

# Lost races surface as one of these; the whole unit is rolled back and re-run
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Version columns still catch lost updates there (StaleDataError).
    """
    return query.with_for_update()


def _configured_attempts() -> int:
    try:
        return max(1, int(current_app.config.get("INVENTORY_RETRY_ATTEMPTS", 3)))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a read-modify-write unit, retrying on concurrency failures.

    func must do its own reads, writes and commit so a retry starts from fresh
    state. Retries on OperationalError (locks), StaleDataError (optimistic
    locking) and IntegrityError (unique-constraint races). Once attempts are
    exhausted the conflict is surfaced as ConflictError.
    """
    attempts = attempts or _configured_attempts()
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Giving up after %d attempts: %s", attempts, exc.__class__.__name__)
                raise ConflictError(
                    "Concurrent update conflict, please retry",
                    reason=exc.__class__.__name__,
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ConflictError("Concurrent update conflict, please retry")
