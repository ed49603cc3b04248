"""Unit of work: one atomic transaction per ledger operation.

    result = run_in_transaction(db, lambda: engine_step(...), operation="transfer.approve")

- no exception -> commit
- exception -> rollback, nothing of the attempt stays visible
- elapsed time above ``TRANSACTION_TIMEOUT_MS`` -> rollback + ``TransactionTimeoutError``
- transient storage failures (SQLite busy, PostgreSQL serialization failure or
  deadlock) re-run the whole callable up to ``TRANSACTION_MAX_RETRIES`` times;
  business errors (``AppError``) are never retried.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.millstock.core.config import settings
from app.millstock.core.error_catalog import (
    AppError,
    ErrorCatalog,
    NegativeStockInvariantError,
    PersistenceError,
    TransactionTimeoutError,
    negative_counter_from,
)
from app.millstock.core.logging import log_event
from app.millstock.core.metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_SQLSTATES = {"40001", "40P01"}
_TRANSIENT_TOKENS = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
)


def is_transient_error(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(token in message for token in _TRANSIENT_TOKENS)
    return False


class UnitOfWork:
    def __init__(self, session: Session, *, timeout_ms: int | None = None) -> None:
        self.session = session
        self.timeout_ms = settings.TRANSACTION_TIMEOUT_MS if timeout_ms is None else timeout_ms
        self._started_at: float | None = None

    def __enter__(self) -> "UnitOfWork":
        # Reads done by request dependencies must not widen the write transaction.
        if self.session.in_transaction():
            self.session.commit()
        self._started_at = time.perf_counter()
        if self.session.get_bind().dialect.name == "postgresql" and self.timeout_ms > 0:
            self.session.execute(text(f"SET LOCAL statement_timeout = {int(self.timeout_ms)}"))
        return self

    @property
    def elapsed_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return (time.perf_counter() - self._started_at) * 1000

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.session.rollback()
            return False
        elapsed_ms = self.elapsed_ms
        if self.timeout_ms and elapsed_ms > self.timeout_ms:
            self.session.rollback()
            raise TransactionTimeoutError(elapsed_ms=elapsed_ms, timeout_ms=self.timeout_ms)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return False


def run_in_transaction(
    session: Session,
    work: Callable[[], T],
    *,
    operation: str = "unit_of_work",
    max_retries: int | None = None,
    timeout_ms: int | None = None,
) -> T:
    retries = settings.TRANSACTION_MAX_RETRIES if max_retries is None else max_retries
    attempt = 0
    while True:
        try:
            with UnitOfWork(session, timeout_ms=timeout_ms):
                return work()
        except AppError:
            raise
        except SQLAlchemyError as exc:
            column = negative_counter_from(exc)
            if column is not None:
                metrics.increment_ledger_conflict()
                raise NegativeStockInvariantError(bucket=column.upper(), operation=operation) from exc
            if is_transient_error(exc) and attempt < retries:
                attempt += 1
                metrics.increment_transaction_retry()
                log_event(
                    logger,
                    "transaction_retry",
                    level=logging.WARNING,
                    operation=operation,
                    attempt=attempt,
                    error_class=exc.__class__.__name__,
                )
                time.sleep(0.01 * attempt)
                continue
            details = {"operation": operation, "type": exc.__class__.__name__, "attempts": attempt + 1}
            if is_transient_error(exc):
                metrics.increment_lock_wait_timeout()
                raise PersistenceError(details, error=ErrorCatalog.LOCK_TIMEOUT) from exc
            raise PersistenceError(details) from exc
