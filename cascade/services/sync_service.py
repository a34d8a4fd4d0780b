"""
Cascade Sync Engine - Derives secondary records from guest flags.

Entry points:
1. trigger_batch_sync(entity_type, subject_ids) - bulk import / admin batch
2. trigger_full_sync(subject_id) - admin "resync everything" for one client

Transactions:
    - Every subject is synced inside its own transaction boundary
    - A failing subject is rolled back completely and reported in
      SyncResult.errors; the batch moves on to the next subject
    - Created counts only include subjects whose transaction committed

Idempotency:
    - Every rule reads what already exists and inserts only what is missing
    - Inserts go through INSERT ... ON CONFLICT DO NOTHING on the derived
      tables' unique keys, so concurrent syncs of one subject cannot duplicate
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cascade.context import EngineContext
from cascade.derivation import (
    DerivationScope,
    sync_accommodation_schedule,
    sync_guest_accommodation,
    sync_guest_transport,
    sync_transport_schedule,
)
from cascade.errors import SubjectNotFound, UnknownEntityType
from cascade.transactions import run_in_transaction
from database.models import Client

logger = logging.getLogger(__name__)


# ============================================================================
# Results
# ============================================================================


@dataclass
class CreatedCounts:
    """Derived rows created, per target module."""

    accommodation: int = 0
    transport: int = 0
    schedule: int = 0

    def merge(self, other: "CreatedCounts") -> None:
        self.accommodation += other.accommodation
        self.transport += other.transport
        self.schedule += other.schedule

    @property
    def total(self) -> int:
        return self.accommodation + self.transport + self.schedule


@dataclass
class SyncResult:
    """
    Outcome of a batch or full sync.

    Attributes:
        success: False if any subject failed
        synced: Number of subjects whose transaction committed
        created: Rows created by committed subjects only
        errors: One "<subject_id>: <message>" line per failed subject
    """

    success: bool = True
    synced: int = 0
    created: CreatedCounts = field(default_factory=CreatedCounts)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# Rules
# ============================================================================


@dataclass(frozen=True)
class Rule:
    """A derivation rule and the counter its created rows land in."""

    name: str
    run: Callable[[AsyncSession, DerivationScope], Awaitable[int]]
    target: str


GUEST_ACCOMMODATION = Rule("guest->accommodation", sync_guest_accommodation, "accommodation")
GUEST_TRANSPORT = Rule("guest->transport", sync_guest_transport, "transport")
ACCOMMODATION_SCHEDULE = Rule("accommodation->schedule", sync_accommodation_schedule, "schedule")
TRANSPORT_SCHEDULE = Rule("transport->schedule", sync_transport_schedule, "schedule")

# Fixed order: upstream rules run before the rules that read their output
FULL_SYNC_RULES = (
    GUEST_ACCOMMODATION,
    GUEST_TRANSPORT,
    ACCOMMODATION_SCHEDULE,
    TRANSPORT_SCHEDULE,
)

ENTITY_RULES: dict[str, tuple[Rule, ...]] = {
    "guests": FULL_SYNC_RULES,
    "accommodation": (ACCOMMODATION_SCHEDULE,),
    "transport": (TRANSPORT_SCHEDULE,),
    "schedule": (ACCOMMODATION_SCHEDULE, TRANSPORT_SCHEDULE),
}


# ============================================================================
# Engine
# ============================================================================


class CascadeSyncEngine:
    """
    Runs derivation rules for sync subjects.

    Subjects are processed strictly sequentially, one transaction each.
    """

    def __init__(self, context: EngineContext):
        self.context = context

    async def _sync_subject(self, subject_id: UUID, rules: tuple[Rule, ...]) -> CreatedCounts:
        settings = self.context.settings

        async def _work(session: AsyncSession) -> CreatedCounts:
            client = await session.get(Client, subject_id)
            if client is None:
                raise SubjectNotFound(subject_id)

            scope = DerivationScope(
                client_id=client.id,
                event_date=client.event_date,
                timezone=self.context.timezone,
                check_in_hour=settings.HOTEL_CHECK_IN_HOUR,
            )
            counts = CreatedCounts()
            for rule in rules:
                created = await rule.run(session, scope)
                setattr(counts, rule.target, getattr(counts, rule.target) + created)
                logger.debug(
                    f"Rule {rule.name} created {created} rows",
                    extra={"subject_id": str(subject_id)},
                )
            return counts

        return await run_in_transaction(
            self.context.session_factory,
            _work,
            isolation_level=settings.TRANSACTION_ISOLATION_LEVEL,
            max_retries=settings.TRANSACTION_MAX_RETRIES,
            retry_delay_ms=settings.TRANSACTION_RETRY_DELAY_MS,
            subject_id=str(subject_id),
        )

    async def _run_subjects(
        self, entity_type: str, subject_ids: list[UUID], rules: tuple[Rule, ...]
    ) -> SyncResult:
        result = SyncResult()

        for subject_id in subject_ids:
            log_extra = {"subject_id": str(subject_id), "entity_type": entity_type}
            try:
                counts = await self._sync_subject(subject_id, rules)
            except Exception as e:
                # Contained per subject; the rest of the batch still runs
                result.success = False
                result.errors.append(f"{subject_id}: {e}")
                logger.error(
                    f"Sync failed for subject {subject_id}: {e}",
                    extra=log_extra,
                    exc_info=True,
                )
                continue

            result.synced += 1
            result.created.merge(counts)
            logger.info(
                f"Subject {subject_id} synced, {counts.total} rows created",
                extra=log_extra,
            )

        return result

    async def trigger_batch_sync(self, entity_type: str, subject_ids: list[UUID]) -> SyncResult:
        """
        Sync many subjects for one entity type.

        Args:
            entity_type: guests, accommodation, transport or schedule
            subject_ids: Clients to sync, processed in order

        Returns:
            SyncResult aggregated over all subjects

        Raises:
            UnknownEntityType: Before any subject is touched
        """
        rules = ENTITY_RULES.get(entity_type)
        if rules is None:
            raise UnknownEntityType(entity_type, sorted(ENTITY_RULES))

        logger.info(
            f"Starting batch sync for {len(subject_ids)} subjects",
            extra={"entity_type": entity_type},
        )
        result = await self._run_subjects(entity_type, subject_ids, rules)
        logger.info(
            f"Batch sync finished: synced={result.synced}, "
            f"created={result.created.total}, errors={len(result.errors)}",
            extra={"entity_type": entity_type},
        )
        return result

    async def trigger_full_sync(self, subject_id: UUID) -> SyncResult:
        """
        Run every rule for one subject in a single transaction.

        Order: guest->accommodation, guest->transport, accommodation->schedule,
        transport->schedule. A failure anywhere rolls the whole subject back
        and is reported in the result rather than raised.
        """
        logger.info("Starting full sync", extra={"subject_id": str(subject_id)})
        return await self._run_subjects("full", [subject_id], FULL_SYNC_RULES)
