from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConcurrencyConflictError, StorageFailureError
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)

# SQLSTATE codes PostgreSQL uses for serialization failures and deadlocks
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}


def is_conflict(exc: SQLAlchemyError) -> bool:
    """True when the database refused the transaction because of contention."""
    if isinstance(exc, DBAPIError):
        pgcode = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        if pgcode in _CONFLICT_SQLSTATES:
            return True
    if isinstance(exc, OperationalError):
        msg = str(exc.orig).lower()
        return "database is locked" in msg or "deadlock" in msg
    return False


class UnitOfWork:
    """One database transaction shared by every component taking part in it.

    Usage::

        with UnitOfWork() as uow:
            StockLedger(uow).deduct(item_id, qty)
            uow.commit()

    An exception inside the block rolls the whole transaction back; leaving
    it without ``commit()`` discards the transaction when the session closes.
    Objects loaded inside the block stay readable afterwards. Driver errors
    are re-raised as ``ConcurrencyConflictError`` or ``StorageFailureError``.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is not None:
                self.session.rollback()
        finally:
            self.session.close()
        if exc is not None and isinstance(exc, SQLAlchemyError):
            raise self._translate(exc) from exc
        return False

    def commit(self) -> None:
        self.session.commit()

    @staticmethod
    def _translate(exc: SQLAlchemyError):
        if is_conflict(exc):
            logger.warning("transaction aborted by concurrent update: %s", exc)
            return ConcurrencyConflictError("Transaction could not commit due to a concurrent update; retry")
        logger.error("storage failure, transaction rolled back", exc_info=exc)
        return StorageFailureError("Storage failure; no changes were applied")
