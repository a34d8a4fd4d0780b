"""
Test configuration and fixtures.

Integration fixtures build a fresh SQLite database (aiosqlite) per test under
tmp_path, so commit/rollback and unique-constraint behaviour is real while no
PostgreSQL server is needed.
"""

import os
from datetime import date, datetime
from uuid import UUID

import pytest

# Must be set BEFORE any import of shared.config reads the environment
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./cascade_test.db"
os.environ["TIMEZONE"] = "UTC"
os.environ["LOG_LEVEL"] = "DEBUG"

from cascade.context import EngineContext  # noqa: E402
from cascade.ledger import IdempotencyLedger  # noqa: E402
from cascade.services import CascadeSyncEngine  # noqa: E402
from database.connection import build_engine, build_session_factory  # noqa: E402
from database.models import Base, Client, Guest  # noqa: E402
from shared.config import Settings  # noqa: E402


@pytest.fixture
def settings():
    """Settings with short retry delays; SQLite reports write contention as "database is locked"."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///./cascade_test.db",
        TIMEZONE="UTC",
        TRANSACTION_MAX_RETRIES=5,
        TRANSACTION_RETRY_DELAY_MS=5,
        LEDGER_RETRY_FAILED_EVENTS=True,
        LEDGER_MAX_RETRIES=2,
        HOTEL_CHECK_IN_HOUR=15,
    )


@pytest.fixture
async def db_engine(tmp_path):
    """Async engine on a per-test SQLite file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cascade.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def engine_context(session_factory, settings):
    return EngineContext(session_factory=session_factory, settings=settings)


@pytest.fixture
def ledger(engine_context):
    return IdempotencyLedger(engine_context)


@pytest.fixture
def sync_engine(engine_context):
    return CascadeSyncEngine(engine_context)


@pytest.fixture
def seed(session_factory):
    """Persist ORM objects in one committed transaction."""

    async def _seed(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects

    return _seed


@pytest.fixture
def make_client():
    def _make(name: str = "Ana & Luis", event_date: date | None = date(2026, 3, 15)) -> Client:
        return Client(name=name, event_date=event_date)

    return _make


@pytest.fixture
def make_guest():
    def _make(
        client_id: UUID,
        first_name: str = "Marta",
        last_name: str = "Ruiz",
        arrival_at: datetime | None = None,
        **fields,
    ) -> Guest:
        return Guest(
            client_id=client_id,
            first_name=first_name,
            last_name=last_name,
            arrival_at=arrival_at,
            **fields,
        )

    return _make
