"""
guest -> transport derivation.

Every guest flagged transport_required gets one arrival leg. Legs are keyed
by guest_id, so a guest has at most one derived leg.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cascade.derivation.dates import local_date, local_time
from cascade.derivation.scope import DerivationScope
from database.models import Guest, LegType, TransportLeg
from database.upsert import insert_or_ignore

logger = logging.getLogger(__name__)


def vehicle_info(transport_type: str | None, arrival_mode: str | None) -> str | None:
    """
    "{transport_type} ({arrival_mode})" when both are known, else whichever is.

    Example:
        >>> vehicle_info("shuttle", "flight")
        'shuttle (flight)'
    """
    if transport_type and arrival_mode:
        return f"{transport_type} ({arrival_mode})"
    return transport_type or arrival_mode or None


async def sync_guest_transport(session: AsyncSession, scope: DerivationScope) -> int:
    """
    Create missing arrival legs for the subject's guests.

    Pickup date/time come from the guest's explicit transport fields, falling
    back to arrival_at. Pickup is the requested location, drop-off the hotel.

    Returns:
        Number of legs created
    """
    guests = (
        await session.execute(
            select(Guest)
            .where(
                Guest.client_id == scope.client_id,
                Guest.transport_required.is_(True),
            )
            .order_by(Guest.created_at, Guest.id)
        )
    ).scalars().all()

    existing = set(
        (
            await session.execute(
                select(TransportLeg.guest_id).where(TransportLeg.client_id == scope.client_id)
            )
        ).scalars().all()
    )

    created = 0
    for guest in guests:
        if guest.id in existing:
            continue

        pickup_date = guest.transport_pickup_date or local_date(guest.arrival_at, scope.timezone)
        pickup_time = guest.transport_pickup_time or local_time(guest.arrival_at, scope.timezone)

        leg_id = await insert_or_ignore(
            session,
            TransportLeg,
            {
                "client_id": scope.client_id,
                "guest_id": guest.id,
                "guest_name": guest.full_name,
                "leg_type": LegType.ARRIVAL,
                "pickup_date": pickup_date,
                "pickup_time": pickup_time,
                "pickup_from": guest.transport_pickup_location,
                "drop_to": guest.hotel_name,
                "vehicle_info": vehicle_info(guest.transport_type, guest.arrival_mode),
                "notes": guest.transport_notes,
            },
            ["guest_id"],
        )
        if leg_id is None:
            logger.debug(
                f"Transport leg for guest {guest.id} already exists",
                extra={"subject_id": str(scope.client_id)},
            )
            continue
        created += 1

    if created:
        logger.info(
            f"Created {created} transport legs",
            extra={"subject_id": str(scope.client_id)},
        )
    return created
