# Overview: Locking and retry helpers shared by services that mutate the ledger.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


TRANSIENT_ERRORS = (OperationalError, StaleDataError)

_store_locks: dict[int, threading.Lock] = {}
_store_locks_guard = threading.Lock()


class LockTimeoutError(RuntimeError):
    """Raised when a store's ledger lock cannot be taken in time."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    store_ledger_lock covers the single-process SQLite case.
    """
    return query.with_for_update()


def _lock_for_store(store_id: int) -> threading.Lock:
    with _store_locks_guard:
        lock = _store_locks.get(store_id)
        if lock is None:
            lock = threading.Lock()
            _store_locks[store_id] = lock
        return lock


@contextmanager
def store_ledger_lock(store_id: int, *, timeout: float):
    """
    Serialize ledger mutations for one store within this process.

    Different stores have different locks and never wait on each other.
    Raises LockTimeoutError after `timeout` seconds.
    """
    lock = _lock_for_store(store_id)
    if not lock.acquire(timeout=timeout):
        raise LockTimeoutError(f"Timed out after {timeout}s waiting for ledger lock on store {store_id}")
    try:
        yield
    finally:
        lock.release()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=TRANSIENT_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) unless retry_on says otherwise.
    The session is rolled back before each new attempt.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
