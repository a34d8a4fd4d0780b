"""
Transaction boundary for ledger writes and cascade syncs.

run_in_transaction() is the single way the cascade package touches the store:
- Opens a session and begins a transaction (optionally at a given isolation level)
- Awaits the unit of work, commits on success, rolls back on any exception
- Retries deadlocks / serialization failures / lock timeouts with linear back-off
- Wraps non-retryable SQLAlchemy errors in StoreError with correlation ids

Anything the unit of work raises that is not a database error propagates
unchanged after the rollback.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cascade.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATEs worth another attempt
RETRYABLE_SQLSTATES = {
    "40P01",  # deadlock_detected
    "40001",  # serialization_failure
    "55P03",  # lock_not_available
}

RETRYABLE_MESSAGES = ("deadlock", "connection", "timeout", "database is locked")

ISOLATION_LEVELS = {
    "READ COMMITTED",
    "REPEATABLE READ",
    "SERIALIZABLE",
}


def is_retryable_error(error: Exception) -> bool:
    """True for deadlocks, serialization failures, lock and connection timeouts."""
    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return True
        orig = error.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in RETRYABLE_SQLSTATES:
            return True
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


async def _set_isolation_level(session: AsyncSession, isolation_level: str) -> None:
    level = isolation_level.upper()
    if level not in ISOLATION_LEVELS:
        raise ValueError(f"Unsupported isolation level: {isolation_level}")

    if session.get_bind().dialect.name != "postgresql":
        logger.debug(f"Isolation level {level} ignored for non-PostgreSQL store")
        return

    await session.execute(text(f"SET TRANSACTION ISOLATION LEVEL {level}"))


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    isolation_level: str | None = None,
    max_retries: int = 3,
    retry_delay_ms: int = 100,
    subject_id: str | None = None,
    provider: str | None = None,
    external_event_id: str | None = None,
    ledger_id: str | None = None,
) -> T:
    """
    Run work(session) inside one all-or-nothing transaction.

    Args:
        session_factory: Factory producing the session for each attempt
        work: Coroutine function receiving the open session
        isolation_level: Optional isolation level for the transaction
        max_retries: Total attempts for retryable database errors
        retry_delay_ms: Base back-off; attempt N waits N * retry_delay_ms
        subject_id / provider / external_event_id / ledger_id: Correlation ids for logs
            and StoreError

    Returns:
        Whatever work returned, once committed

    Raises:
        StoreError: Non-retryable database error, or retries exhausted
        Exception: Any non-database exception raised by work (after rollback)
    """
    correlation = {
        key: value
        for key, value in (
            ("subject_id", subject_id),
            ("provider", provider),
            ("external_event_id", external_event_id),
            ("ledger_id", ledger_id),
        )
        if value is not None
    }
    attempts = max(1, max_retries)
    attempt = 0

    while True:
        attempt += 1
        async with session_factory() as session:
            try:
                if isolation_level:
                    await _set_isolation_level(session, isolation_level)
                result = await work(session)
                await session.commit()
                return result

            except SQLAlchemyError as e:
                await session.rollback()

                if is_retryable_error(e) and attempt < attempts:
                    delay_ms = retry_delay_ms * attempt
                    logger.warning(
                        f"Retryable database error (attempt {attempt}/{attempts}), "
                        f"retrying in {delay_ms}ms: {e}",
                        extra=correlation,
                    )
                    await asyncio.sleep(delay_ms / 1000)
                    continue

                if is_retryable_error(e):
                    message = f"Transaction failed after {attempt} attempts"
                else:
                    message = "Transaction failed"
                logger.error(f"{message}: {e}", extra=correlation, exc_info=True)
                raise StoreError(message, e, **correlation) from e

            except Exception:
                await session.rollback()
                raise
