"""
services/unit_of_work.py — Atomic unit of work for cascades and rating writes.

Every mutating engine operation runs inside unit_of_work(session). Inside
it, services only flush; the route commits once the service returns. If
anything raises, the whole session is rolled back before the error leaves,
so a cascade is never partially applied.

Store errors are translated into the error taxonomy here, once:

    missing table / column, store integrity error  → INTEGRITY_VIOLATION (500)
    connection lost, pool timeout, statement timeout → STORE_UNAVAILABLE (503)

Layer rules:
  - No Flask imports. Receives the SQLAlchemy Session as an argument.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)

# Driver messages that mean "the configured table/column is not there".
# SQLite reports these as OperationalError, PostgreSQL as ProgrammingError.
_SQLITE_MISSING_SCHEMA = ("no such table", "no such column")
_POSTGRES_MISSING_SCHEMA = ("relation", "column")


def _is_missing_schema(exc: SQLAlchemyError) -> bool:
    message = str(getattr(exc, "orig", None) or exc).lower()
    if any(marker in message for marker in _SQLITE_MISSING_SCHEMA):
        return True
    return "does not exist" in message and any(
        marker in message for marker in _POSTGRES_MISSING_SCHEMA
    )


def translate_db_error(exc: SQLAlchemyError) -> AppError:
    """Maps a SQLAlchemy error to the AppError the caller should see."""
    if isinstance(exc, (ProgrammingError, IntegrityError)) or _is_missing_schema(exc):
        logger.critical(
            "Reference index and store disagree; operator action required: %s", exc,
        )
        return AppError(
            ErrorCode.INTEGRITY_VIOLATION,
            "The data store rejected the operation because of a configuration error.",
            500,
        )
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)):
        logger.warning("Store unavailable during unit of work: %s", exc)
        return AppError(
            ErrorCode.STORE_UNAVAILABLE,
            "The data store is temporarily unavailable. Retry the request.",
            503,
        )
    logger.error("Unexpected store error during unit of work: %s", exc)
    return AppError(
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred. Please try again later.",
        500,
    )


def _apply_timeout(session: Session, timeout_ms: int | None) -> None:
    """
    Bounds the unit of work with a server-side statement timeout.
    PostgreSQL only; SET LOCAL expires with the transaction.
    """
    if not timeout_ms:
        return
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


@contextmanager
def unit_of_work(session: Session, timeout_ms: int | None = None) -> Iterator[Session]:
    """
    Runs the enclosed block as one atomic unit.

    On success the session is flushed (not committed). On any exception the
    session is rolled back; SQLAlchemy errors are re-raised as AppError.
    """
    try:
        _apply_timeout(session, timeout_ms)
        yield session
        session.flush()
    except SQLAlchemyError as exc:
        session.rollback()
        raise translate_db_error(exc) from exc
    except Exception:
        session.rollback()
        raise
