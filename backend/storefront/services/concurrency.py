# Overview: Transaction discipline for the Stock Ledger; isolation, timeouts and retry helpers.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    ConflictError,
    InternalError,
    SerializationFailureError,
    StorefrontError,
    TransactionTimeoutError,
)
from ..extensions import db


# SQLSTATE codes (PostgreSQL)
SERIALIZATION_CODES = {"40001", "40P01"}  # serialization_failure, deadlock_detected
TIMEOUT_CODES = {"55P03", "57014"}  # lock_not_available, query_canceled


def lock_for_update(query, of=None):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; ledger_transaction opens SQLite
    transactions with BEGIN IMMEDIATE instead, which takes the write lock up front.
    """
    if of is not None:
        return query.with_for_update(of=of)
    return query.with_for_update()


class Deadline:
    """Monotonic budget for one transaction."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        self.expires_at = time.monotonic() + timeout_ms / 1000.0

    def remaining_ms(self) -> int:
        return max(0, int((self.expires_at - time.monotonic()) * 1000))

    def check(self, step: str) -> None:
        if time.monotonic() > self.expires_at:
            raise TransactionTimeoutError(
                f"Transaction exceeded {self.timeout_ms}ms during {step}",
                details={"step": step, "timeout_ms": self.timeout_ms},
            )


def classify_db_error(exc: Exception) -> StorefrontError:
    """Map a driver/SQLAlchemy error onto the service error taxonomy."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig or exc).lower()

    if code in SERIALIZATION_CODES or "could not serialize" in message or "deadlock" in message:
        return SerializationFailureError(
            "Concurrent update conflict; the request may be retried",
            details={"sqlstate": code},
        )
    if (
        code in TIMEOUT_CODES
        or "database is locked" in message
        or "lock timeout" in message
        or "statement timeout" in message
        or "canceling statement" in message
    ):
        return TransactionTimeoutError(
            "Timed out waiting for the inventory transaction; the request may be retried",
            details={"sqlstate": code},
        )
    if isinstance(exc, IntegrityError):
        return ConflictError("Duplicate or conflicting record", details={"sqlstate": code})
    if isinstance(exc, StaleDataError):
        return SerializationFailureError("Row changed concurrently; the request may be retried")
    return InternalError("Unexpected database failure")


def _begin_isolated(max_wait_ms: int, timeout_ms: int) -> None:
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        # busy_timeout bounds the wait for the write lock
        db.session.execute(text(f"PRAGMA busy_timeout = {int(max_wait_ms)}"))
        db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        db.session.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))
        db.session.execute(text(f"SET LOCAL lock_timeout = '{int(max_wait_ms)}ms'"))
        db.session.execute(text(f"SET LOCAL statement_timeout = '{int(timeout_ms)}ms'"))
    elif dialect in {"mysql", "mariadb"}:
        db.session.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))
        db.session.execute(text(f"SET SESSION innodb_lock_wait_timeout = {max(1, int(max_wait_ms) // 1000)}"))


@contextmanager
def ledger_transaction(*, max_wait_ms: int | None = None, timeout_ms: int | None = None):
    """
    Run one atomic unit of work against the Stock Ledger.

    Yields a Deadline the caller checks between steps. On any failure the
    whole transaction is rolled back; driver errors are re-raised as
    SerializationFailureError / TransactionTimeoutError (retryable),
    ConflictError or InternalError. Nothing here retries.

    Must be entered with a clean session: pending work is discarded.
    """
    config = current_app.config
    max_wait_ms = max_wait_ms or config.get("ORDER_TX_MAX_WAIT_MS", 5000)
    timeout_ms = timeout_ms or config.get("ORDER_TX_TIMEOUT_MS", 10000)

    db.session.rollback()
    deadline = Deadline(timeout_ms)
    try:
        _begin_isolated(max_wait_ms, timeout_ms)
        yield deadline
        deadline.check("commit")
        db.session.commit()
    except StorefrontError:
        db.session.rollback()
        raise
    except (DBAPIError, StaleDataError) as exc:
        db.session.rollback()
        raise classify_db_error(exc) from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on retryable service errors (serialization conflicts, lock
    timeouts) and raw OperationalError / StaleDataError. Only wrap operations
    that are safe to repeat.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, SerializationFailureError, TransactionTimeoutError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
