"""Begin/commit/rollback around a unit of work on one pooled connection."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection

from ..domain_errors import DomainError, TransactionFailed
from .retry import is_transient_error

if TYPE_CHECKING:
    from ..database import ConnectionPool

logger = logging.getLogger(__name__)

T = TypeVar("T")

_transaction_open: ContextVar[bool] = ContextVar("workflowpro_transaction_open", default=False)


async def run_in_transaction(
    pool: "ConnectionPool",
    work: Callable[[AsyncConnection], Awaitable[T]],
    *,
    label: str = "transaction",
) -> T:
    """Run `work` inside BEGIN ... COMMIT on a freshly acquired connection.

    Any exception rolls the transaction back. Domain and transient errors are
    re-raised unchanged; anything else becomes TransactionFailed. A failed
    COMMIT is reported as TransactionFailed because its outcome is unknown.
    The connection is released on every path.
    """
    if _transaction_open.get():
        raise RuntimeError("Nested transactions are not supported")

    token = _transaction_open.set(True)
    conn = None
    try:
        conn = await pool.acquire()
        trans = await conn.begin()
        try:
            result = await work(conn)
        except Exception as exc:
            await _rollback_quietly(trans, label)
            if isinstance(exc, DomainError) or is_transient_error(exc):
                raise
            logger.exception("%s rolled back", label)
            raise TransactionFailed(
                code="TRANSACTION_FAILED",
                message=f"{label} was rolled back",
                details={"operation": label},
            ) from exc

        try:
            await trans.commit()
        except Exception as exc:
            logger.exception("%s commit failed", label)
            await _rollback_quietly(trans, label)
            raise TransactionFailed(
                code="TRANSACTION_COMMIT_FAILED",
                message=f"{label} could not be committed",
                details={"operation": label},
            ) from exc
        return result
    finally:
        if conn is not None:
            await pool.release(conn)
        _transaction_open.reset(token)


async def _rollback_quietly(trans, label: str) -> None:
    if not trans.is_active:
        return
    try:
        await trans.rollback()
    except Exception:
        # The original error is more useful to the caller than the rollback one.
        logger.exception("%s rollback failed", label)
