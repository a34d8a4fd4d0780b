"""
guest -> accommodation derivation.

Every guest of the subject flagged accommodation_required gets exactly one
accommodation stay. Existing stays are never touched: once created they
belong to the hotels feature.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cascade.derivation.dates import resolve_check_in, resolve_check_out
from cascade.derivation.scope import DerivationScope
from database.models import AccommodationStay, Guest
from database.upsert import insert_or_ignore

logger = logging.getLogger(__name__)


async def sync_guest_accommodation(session: AsyncSession, scope: DerivationScope) -> int:
    """
    Create missing accommodation stays for the subject's guests.

    Check-in priority: guest.hotel_check_in > date of guest.arrival_at >
    event_date - 1 day. Check-out mirrors it with hotel_check_out,
    departure_at and event_date + 1 day.

    Returns:
        Number of stays created
    """
    guests = (
        await session.execute(
            select(Guest)
            .where(
                Guest.client_id == scope.client_id,
                Guest.accommodation_required.is_(True),
            )
            .order_by(Guest.created_at, Guest.id)
        )
    ).scalars().all()

    existing = set(
        (
            await session.execute(
                select(AccommodationStay.guest_id).where(
                    AccommodationStay.client_id == scope.client_id
                )
            )
        ).scalars().all()
    )

    created = 0
    for guest in guests:
        if guest.id in existing:
            continue

        stay_id = await insert_or_ignore(
            session,
            AccommodationStay,
            {
                "client_id": scope.client_id,
                "guest_id": guest.id,
                "guest_name": guest.full_name,
                "hotel_name": guest.hotel_name,
                "check_in": resolve_check_in(
                    guest.hotel_check_in, guest.arrival_at, scope.event_date, scope.timezone
                ),
                "check_out": resolve_check_out(
                    guest.hotel_check_out, guest.departure_at, scope.event_date, scope.timezone
                ),
                "room_type": guest.hotel_room_type,
            },
            ["guest_id"],
        )
        if stay_id is None:
            # Created concurrently by another sync of the same subject
            logger.debug(
                f"Accommodation stay for guest {guest.id} already exists",
                extra={"subject_id": str(scope.client_id)},
            )
            continue
        created += 1

    if created:
        logger.info(
            f"Created {created} accommodation stays",
            extra={"subject_id": str(scope.client_id)},
        )
    return created
