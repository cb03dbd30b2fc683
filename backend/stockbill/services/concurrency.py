# Overview: Row locking, retry with backoff, and retryable-error classification.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

# Lock waits, deadlocks, "database is locked", optimistic-lock conflicts.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, TimeoutError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_retryable(exc: BaseException) -> bool:
    """
    Transient store failures are retryable; everything else is fatal.

    IntegrityError is a constraint violation (duplicate SKU, negative stock
    at the CHECK) and retrying cannot change the outcome.
    """
    if isinstance(exc, IntegrityError):
        return False
    return isinstance(exc, RETRYABLE_ERRORS)


def _retry_settings(attempts, backoff_base):
    if has_app_context():
        attempts = attempts or current_app.config.get("RETRY_ATTEMPTS", 3)
        backoff_base = backoff_base if backoff_base is not None else current_app.config.get("RETRY_BACKOFF_BASE", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    The session is rolled back before each retry, so `func` must redo all
    of its reads and writes from scratch.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))

