"""
SQLAlchemy ORM models for the ledger and cascade tables.

This module defines:
- webhook_events: Idempotency ledger for inbound provider events (audit trail)
- clients: Sync subjects; event_date is the reference date for derived stays
- guests: Primary records owned by the guest feature (read-only for the engine)
- accommodation_stays: Derived from guests flagged accommodation_required
- transport_legs: Derived from guests flagged transport_required
- schedule_entries: Derived from stays and transport legs

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- JSON (JSONB on PostgreSQL) for flexible payload/metadata storage
- Unique constraints on the idempotency keys of every derived table
"""

from datetime import date, datetime, time
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    DATE,
    JSON,
    TIME,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum_values(enum_cls: type[PyEnum]) -> list[str]:
    return [member.value for member in enum_cls]


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class LedgerStatus(str, PyEnum):
    """Lifecycle status of a ledger entry."""

    PENDING = "pending"        # Recorded, handler not finished yet
    PROCESSED = "processed"    # Handler succeeded
    FAILED = "failed"          # Handler raised (may be claimed for retry)
    SKIPPED = "skipped"        # No handler for this event type

    def __str__(self):
        return self.value


class SourceModule(str, PyEnum):
    """Module a schedule entry was derived from."""

    ACCOMMODATION = "accommodation"
    TRANSPORT = "transport"


class LegType(str, PyEnum):
    """Transport leg direction."""

    ARRIVAL = "arrival"
    DEPARTURE = "departure"
    INTER_EVENT = "inter_event"


# ============================================================================
# Idempotency Ledger
# ============================================================================


class LedgerEntry(Base):
    """
    Ledger entry - One row per (provider, external_event_id).

    Created on first sight of an event, never deleted. Only the idempotency
    ledger mutates it: status flips pending -> processed exactly once per
    successful handling, retry_count grows only when a failed attempt is
    retried.
    """

    __tablename__ = "webhook_events"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Idempotency key
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    external_event_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Event data (audit trail)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Processing state
    status: Mapped[LedgerStatus] = mapped_column(
        SQLEnum(
            LedgerStatus,
            name="ledger_status",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=LedgerStatus.PENDING,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    processing_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "provider", "external_event_id", name="uq_webhook_events_provider_event_id"
        ),
        CheckConstraint("retry_count >= 0", name="check_webhook_events_retry_count"),
        Index("idx_webhook_events_status", "status"),
        Index("idx_webhook_events_created_at", "created_at"),
        Index("idx_webhook_events_event_type", "event_type"),
    )

    @property
    def processed(self) -> bool:
        """True once the event has been handled successfully."""
        return self.status == LedgerStatus.PROCESSED

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(provider='{self.provider}', "
            f"external_event_id='{self.external_event_id}', status={self.status})>"
        )


# ============================================================================
# Primary Records
# ============================================================================


class Client(Base):
    """
    Client model - The subject a cascade sync runs for.

    event_date is the reference date: stays without any guest date fall back
    to the day before / the day after it.
    """

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    event_date: Mapped[date | None] = mapped_column(DATE, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Client(name='{self.name}', event_date={self.event_date})>"


class Guest(Base):
    """
    Guest model - Owned by the guest feature.

    The cascade engine only reads guests; the accommodation_required and
    transport_required flags drive derivation.
    """

    __tablename__ = "guests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # Travel
    arrival_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    arrival_mode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    departure_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    departure_mode: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Accommodation request
    accommodation_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    hotel_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    hotel_check_in: Mapped[date | None] = mapped_column(DATE, nullable=True)
    hotel_check_out: Mapped[date | None] = mapped_column(DATE, nullable=True)
    hotel_room_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Transport request
    transport_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    transport_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transport_pickup_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transport_pickup_date: Mapped[date | None] = mapped_column(DATE, nullable=True)
    transport_pickup_time: Mapped[time | None] = mapped_column(TIME, nullable=True)
    transport_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_guests_client_id", "client_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<Guest(name='{self.full_name}', client_id={self.client_id})>"


# ============================================================================
# Derived Records
# ============================================================================


class AccommodationStay(Base):
    """
    Accommodation stay - Derived from a guest, then owned by the hotels feature.

    At most one per guest_id (enforced by uq_accommodation_stays_guest_id).
    """

    __tablename__ = "accommodation_stays"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    guest_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False
    )
    guest_name: Mapped[str] = mapped_column(String(200), nullable=False)

    hotel_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    check_in: Mapped[date | None] = mapped_column(DATE, nullable=True)
    check_out: Mapped[date | None] = mapped_column(DATE, nullable=True)
    room_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("guest_id", name="uq_accommodation_stays_guest_id"),
        Index("idx_accommodation_stays_client_id", "client_id"),
    )

    def __repr__(self) -> str:
        return f"<AccommodationStay(guest_id={self.guest_id}, check_in={self.check_in})>"


class TransportLeg(Base):
    """
    Transport leg - Derived from a guest, then owned by the transport feature.

    At most one per guest_id under the current single-leg policy.
    """

    __tablename__ = "transport_legs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    guest_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False
    )
    guest_name: Mapped[str] = mapped_column(String(200), nullable=False)

    leg_type: Mapped[LegType] = mapped_column(
        SQLEnum(
            LegType,
            name="transport_leg_type",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=LegType.ARRIVAL,
    )
    pickup_date: Mapped[date | None] = mapped_column(DATE, nullable=True)
    pickup_time: Mapped[time | None] = mapped_column(TIME, nullable=True)
    pickup_from: Mapped[str | None] = mapped_column(String(255), nullable=True)
    drop_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vehicle_info: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        # TODO: widen to (guest_id, leg_type) once multi-leg guests are confirmed by product
        UniqueConstraint("guest_id", name="uq_transport_legs_guest_id"),
        Index("idx_transport_legs_client_id", "client_id"),
    )

    def __repr__(self) -> str:
        return f"<TransportLeg(guest_id={self.guest_id}, leg_type={self.leg_type})>"


class ScheduleEntry(Base):
    """
    Schedule entry - Derived from a stay or a transport leg.

    At most one per (source_module, source_id). The entry_metadata column
    records the originating guest and a direction label.
    """

    __tablename__ = "schedule_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Cross-module link
    source_module: Mapped[SourceModule] = mapped_column(
        SQLEnum(
            SourceModule,
            name="schedule_source_module",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    source_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "source_module", "source_id", name="uq_schedule_entries_source"
        ),
        Index("idx_schedule_entries_client_id", "client_id"),
        Index("idx_schedule_entries_start_time", "start_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleEntry(title='{self.title}', "
            f"source={self.source_module}:{self.source_id})>"
        )
