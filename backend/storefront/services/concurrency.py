# Overview: Row locking, retrying commits and chunked batch writes shared by the services.

from __future__ import annotations

import time
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The conditional UPDATEs in reservation_service and order_service are what
    actually guard against lost updates.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


class BatchWriter:
    """
    Chunk a long run of writes into bounded commits.

    The effective cap is limit - margin (500 - 50 = 450 by default). Every
    batch, including the final partial one, is its own commit, so a crash
    mid-run leaves a committed prefix and no open transaction.

        writer = BatchWriter()
        for row in rows:
            db.session.add(row)
            writer.add()
        writer.flush()
    """

    def __init__(
        self,
        *,
        limit: Optional[int] = None,
        margin: Optional[int] = None,
        commit: Optional[Callable[[], None]] = None,
    ):
        if limit is None:
            limit = current_app.config.get("BATCH_WRITE_LIMIT", 500)
        if margin is None:
            margin = current_app.config.get("BATCH_SAFETY_MARGIN", 50)
        self.cap = max(1, limit - margin)
        self.pending = 0
        self.total = 0
        self.batch_sizes: list[int] = []
        self._commit = commit or commit_with_retry

    @property
    def commits(self) -> int:
        return len(self.batch_sizes)

    def add(self, count: int = 1) -> None:
        for _ in range(count):
            self.pending += 1
            self.total += 1
            if self.pending >= self.cap:
                self.flush()

    def flush(self) -> None:
        if not self.pending:
            return
        self._commit()
        self.batch_sizes.append(self.pending)
        self.pending = 0


def chunked(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def call_with_fallback(func, fallback, *, errors: tuple, label: str):
    """
    Run an external call whose adapter already enforces a timeout; on one of
    the given adapter errors log and return fallback so the caller degrades.
    """
    try:
        return func()
    except errors as exc:
        current_app.logger.warning("%s failed, using fallback: %s", label, exc)
        return fallback


def describe_backend_error(exc: Exception) -> str:
    """Translate storage errors that mean misconfiguration into an actionable message."""
    message = str(exc)
    lowered = message.lower()
    if "index" in lowered:
        return (
            "Missing database index. Please create composite index for "
            "(status ASC, created_at ASC) on orders (run `flask db upgrade`)."
        )
    if "no such table" in lowered or ("relation" in lowered and "does not exist" in lowered):
        return "Database schema is missing tables. Run `flask db upgrade`."
    if "unable to open database" in lowered or "could not connect" in lowered:
        return "Database is unreachable. Check DATABASE_URL."
    return message[:500]
