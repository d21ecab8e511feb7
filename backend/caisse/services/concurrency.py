# Overview: Locking helpers and storage-failure translation for service-layer transactions.

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import wraps

from sqlalchemy.exc import DBAPIError, OperationalError

from ..extensions import db
from ..validation import StorageUnavailableError


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_for_share(query):
    """
    Shared row lock (SELECT ... FOR SHARE).

    Many appenders may hold it at once; a writer taking FOR UPDATE or
    updating the row waits until they commit. SQLite ignores it.
    """
    return query.with_for_update(read=True)


def _is_storage_failure(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@contextmanager
def storage_guard(operation: str):
    """
    Run a unit of work, translating backend failures.

    Any error rolls the transaction back, so a failed call leaves nothing
    half-written. Lock timeouts, dropped connections and similar backend
    failures surface as StorageUnavailableError. Nothing is retried here:
    the caller decides whether to try again.
    """
    try:
        yield
    except DBAPIError as exc:
        db.session.rollback()
        if _is_storage_failure(exc):
            logger.error("Storage unavailable during %s: %s", operation, exc.__class__.__name__)
            raise StorageUnavailableError(f"Storage unavailable during {operation}") from exc
        raise
    except Exception:
        db.session.rollback()
        raise


def transactional(operation: str):
    """Decorator form of storage_guard for service functions."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            with storage_guard(operation):
                return func(*args, **kwargs)
        return wrapper
    return decorator
