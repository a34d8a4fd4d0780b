"""Explicit dependencies handed to the ledger and the sync engine."""

from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.connection import get_session_factory
from shared.config import Settings, get_settings


@dataclass
class EngineContext:
    """
    Store handle plus tunables for one engine instance.

    Attributes:
        session_factory: Creates one session per transaction boundary
        settings: Retry, isolation and derivation settings
    """

    session_factory: async_sessionmaker[AsyncSession]
    settings: Settings = field(default_factory=get_settings)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "EngineContext":
        """Context backed by the application's shared engine."""
        return cls(session_factory=get_session_factory(), settings=settings or get_settings())

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.settings.TIMEZONE)
