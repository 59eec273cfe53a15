# Overview: Atomic-unit runner, row locking and retry for every mutating core operation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, OperationTimeoutError, UnavailableError
from ..extensions import db

_LOCK_WAIT_MARKERS = ("database is locked", "lock wait timeout", "lock timeout", "deadlock")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Balance debits do not rely on this alone (see ledger_service.move_coins).
    """
    return query.with_for_update()


def _is_lock_wait(exc: OperationalError) -> bool:
    text = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in text for marker in _LOCK_WAIT_MARKERS)


def run_atomic(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run `func` as one atomic unit: commit if it returns, roll back if it raises.

    Retries on OperationalError (deadlocks, lock waits) and StaleDataError
    (optimistic version conflicts), re-running `func` from scratch each time.
    When retries run out the failure surfaces as OperationTimeoutError (lock
    waits) or ConflictError. Any other SQLAlchemyError is logged and
    surfaces as UnavailableError. Business-rule errors propagate unchanged
    after the rollback and are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("ATOMIC_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("ATOMIC_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    current_app.logger.warning("Atomic operation conflicted after %d attempts: %s", attempts, exc)
                    raise ConflictError() from exc
                if _is_lock_wait(exc):
                    current_app.logger.warning("Atomic operation timed out after %d attempts: %s", attempts, exc)
                    raise OperationTimeoutError() from exc
                current_app.logger.exception("Storage failure during atomic operation")
                raise UnavailableError() from exc
            current_app.logger.warning("Retrying atomic operation (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Storage failure during atomic operation")
            raise UnavailableError() from exc
        except Exception:
            db.session.rollback()
            raise
