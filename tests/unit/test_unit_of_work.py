"""
Unit tests for the transaction boundary.

Tests coverage:
- Commit on success, rollback on failure
- Retry of deadlocks / serialization failures with linear back-off
- StoreError wrapping with correlation ids
- Non-database exceptions propagate unchanged
- Isolation level handling per dialect
"""

from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from cascade.errors import StoreError
from cascade.transactions import is_retryable_error, run_in_transaction


class _PgError(Exception):
    def __init__(self, message: str, sqlstate: str):
        super().__init__(message)
        self.sqlstate = sqlstate


def _db_error(message: str, sqlstate: str | None = None) -> OperationalError:
    orig = _PgError(message, sqlstate) if sqlstate else Exception(message)
    return OperationalError("UPDATE webhook_events SET status=?", {}, orig)


@pytest.fixture
def session():
    session = AsyncMock()
    bind = MagicMock()
    bind.dialect.name = "postgresql"
    session.get_bind = MagicMock(return_value=bind)
    return session


@pytest.fixture
def session_factory(session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    return factory


class TestIsRetryableError:
    def test_deadlock_sqlstate(self):
        assert is_retryable_error(_db_error("boom", "40P01"))

    def test_serialization_failure_sqlstate(self):
        assert is_retryable_error(_db_error("could not serialize access", "40001"))

    def test_lock_not_available_sqlstate(self):
        assert is_retryable_error(_db_error("boom", "55P03"))

    def test_timeout_message(self):
        assert is_retryable_error(_db_error("statement timeout"))

    def test_unique_violation_not_retryable(self):
        error = IntegrityError("INSERT", {}, _PgError("duplicate key", "23505"))

        assert not is_retryable_error(error)


class TestRunInTransaction:
    """Commit / rollback / retry behaviour."""

    @pytest.mark.asyncio
    async def test_commits_and_returns_result(self, session_factory, session):
        work = AsyncMock(return_value=42)

        result = await run_in_transaction(session_factory, work)

        assert result == 42
        work.assert_awaited_once_with(session)
        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_database_error_propagates_after_rollback(self, session_factory, session):
        work = AsyncMock(side_effect=ValueError("bad guest data"))

        with pytest.raises(ValueError, match="bad guest data"):
            await run_in_transaction(session_factory, work)

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_deadlock_then_succeeds(self, session_factory, session):
        work = AsyncMock(side_effect=[_db_error("deadlock detected", "40P01"), "ok"])

        with patch("cascade.transactions.unit_of_work.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await run_in_transaction(
                session_factory, work, max_retries=3, retry_delay_ms=100
            )

        assert result == "ok"
        assert work.await_count == 2
        mock_sleep.assert_awaited_once_with(0.1)
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_back_off_is_linear(self, session_factory):
        work = AsyncMock(
            side_effect=[
                _db_error("deadlock", "40P01"),
                _db_error("deadlock", "40P01"),
                "ok",
            ]
        )

        with patch("cascade.transactions.unit_of_work.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await run_in_transaction(session_factory, work, max_retries=3, retry_delay_ms=100)

        assert mock_sleep.await_args_list == [call(0.1), call(0.2)]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_store_error(self, session_factory, session):
        work = AsyncMock(side_effect=_db_error("deadlock", "40P01"))

        with patch("cascade.transactions.unit_of_work.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(StoreError) as exc_info:
                await run_in_transaction(
                    session_factory, work, max_retries=3, subject_id="client-1"
                )

        assert work.await_count == 3
        assert "after 3 attempts" in str(exc_info.value)
        assert exc_info.value.subject_id == "client-1"
        assert session.rollback.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_database_error_wrapped_immediately(self, session_factory):
        work = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("constraint failed")))

        with pytest.raises(StoreError) as exc_info:
            await run_in_transaction(
                session_factory,
                work,
                provider="stripe",
                external_event_id="evt_1",
                ledger_id="ledger-1",
            )

        assert work.await_count == 1
        assert exc_info.value.provider == "stripe"
        assert exc_info.value.external_event_id == "evt_1"
        assert exc_info.value.ledger_id == "ledger-1"
        assert isinstance(exc_info.value.original_error, IntegrityError)


class TestIsolationLevel:
    @pytest.mark.asyncio
    async def test_sets_isolation_level_on_postgresql(self, session_factory, session):
        await run_in_transaction(
            session_factory, AsyncMock(return_value=None), isolation_level="serializable"
        )

        statement = session.execute.await_args.args[0]
        assert str(statement) == "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"

    @pytest.mark.asyncio
    async def test_isolation_level_skipped_on_sqlite(self, session_factory, session):
        session.get_bind.return_value.dialect.name = "sqlite"

        await run_in_transaction(
            session_factory, AsyncMock(return_value=None), isolation_level="SERIALIZABLE"
        )

        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_isolation_level_rejected(self, session_factory, session):
        with pytest.raises(ValueError):
            await run_in_transaction(
                session_factory, AsyncMock(), isolation_level="READ SIDEWAYS; DROP TABLE guests"
            )

        session.rollback.assert_awaited_once()
