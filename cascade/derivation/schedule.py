"""
accommodation -> schedule and transport -> schedule derivation.

Schedule entries are keyed by (source_module, source_id); the metadata
column records the originating guest and a direction label.
"""

import logging
from datetime import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cascade.derivation.dates import clamp_hour, start_time_on
from cascade.derivation.scope import DerivationScope
from database.models import AccommodationStay, LegType, ScheduleEntry, SourceModule, TransportLeg
from database.upsert import insert_or_ignore

logger = logging.getLogger(__name__)

LEG_LABELS = {
    LegType.ARRIVAL: "Arrival",
    LegType.DEPARTURE: "Departure",
    LegType.INTER_EVENT: "Transfer",
}

LEG_DIRECTIONS = {
    LegType.ARRIVAL: "pickup",
    LegType.DEPARTURE: "drop-off",
    LegType.INTER_EVENT: "transfer",
}


def transport_location(pickup_from: str | None, drop_to: str | None) -> str | None:
    """'From: X → To: Y', with either side omitted when unknown."""
    parts = []
    if pickup_from:
        parts.append(f"From: {pickup_from}")
    if drop_to:
        parts.append(f"To: {drop_to}")
    return " → ".join(parts) or None


async def _existing_sources(
    session: AsyncSession, scope: DerivationScope, module: SourceModule
) -> set:
    return set(
        (
            await session.execute(
                select(ScheduleEntry.source_id).where(
                    ScheduleEntry.client_id == scope.client_id,
                    ScheduleEntry.source_module == module,
                )
            )
        ).scalars().all()
    )


async def _insert_entry(session: AsyncSession, values: dict) -> bool:
    entry_id = await insert_or_ignore(
        session, ScheduleEntry, values, ["source_module", "source_id"]
    )
    return entry_id is not None


async def sync_accommodation_schedule(session: AsyncSession, scope: DerivationScope) -> int:
    """
    Create a check-in schedule entry for every stay with a check-in date.

    Returns:
        Number of entries created
    """
    stays = (
        await session.execute(
            select(AccommodationStay)
            .where(
                AccommodationStay.client_id == scope.client_id,
                AccommodationStay.check_in.is_not(None),
            )
            .order_by(AccommodationStay.created_at, AccommodationStay.id)
        )
    ).scalars().all()
    existing = await _existing_sources(session, scope, SourceModule.ACCOMMODATION)
    check_in_at = time(clamp_hour(scope.check_in_hour), 0)

    created = 0
    for stay in stays:
        if stay.id in existing:
            continue

        inserted = await _insert_entry(
            session,
            {
                "client_id": scope.client_id,
                "title": f"Hotel Check-in: {stay.guest_name}",
                "description": (
                    f"Check-in at {stay.hotel_name}" if stay.hotel_name else "Guest hotel check-in"
                ),
                "start_time": start_time_on(stay.check_in, check_in_at, scope.timezone),
                "location": stay.hotel_name,
                "source_module": SourceModule.ACCOMMODATION,
                "source_id": stay.id,
                "entry_metadata": {"guest_id": str(stay.guest_id), "direction": "check-in"},
            },
        )
        if inserted:
            created += 1

    if created:
        logger.info(
            f"Created {created} check-in schedule entries",
            extra={"subject_id": str(scope.client_id)},
        )
    return created


async def sync_transport_schedule(session: AsyncSession, scope: DerivationScope) -> int:
    """
    Create a pickup schedule entry for every transport leg with a pickup date.

    Start time is pickup_date at pickup_time (midnight when no time is set).

    Returns:
        Number of entries created
    """
    legs = (
        await session.execute(
            select(TransportLeg)
            .where(
                TransportLeg.client_id == scope.client_id,
                TransportLeg.pickup_date.is_not(None),
            )
            .order_by(TransportLeg.created_at, TransportLeg.id)
        )
    ).scalars().all()
    existing = await _existing_sources(session, scope, SourceModule.TRANSPORT)

    created = 0
    for leg in legs:
        if leg.id in existing:
            continue

        label = LEG_LABELS.get(leg.leg_type, "Transport")
        inserted = await _insert_entry(
            session,
            {
                "client_id": scope.client_id,
                "title": f"{label}: {leg.guest_name}",
                "description": leg.vehicle_info or f"Guest transport - {label.lower()}",
                "start_time": start_time_on(leg.pickup_date, leg.pickup_time, scope.timezone),
                "location": transport_location(leg.pickup_from, leg.drop_to),
                "source_module": SourceModule.TRANSPORT,
                "source_id": leg.id,
                "entry_metadata": {
                    "guest_id": str(leg.guest_id),
                    "leg_type": str(leg.leg_type.value),
                    "direction": LEG_DIRECTIONS.get(leg.leg_type, "pickup"),
                },
            },
        )
        if inserted:
            created += 1

    if created:
        logger.info(
            f"Created {created} transport schedule entries",
            extra={"subject_id": str(scope.client_id)},
        )
    return created
