"""
Idempotency ledger for externally delivered events.

One webhook_events row per (provider, external_event_id). The row is created
the first time an event is seen and never deleted; it doubles as the audit
trail of every delivery.

State machine:
    pending -> processed | failed | skipped   (mark_processed)
    failed  -> pending                         (claim_for_retry)

check_and_record() is a single INSERT ... ON CONFLICT DO NOTHING RETURNING id,
so two concurrent deliveries of the same event cannot both be told they are
first.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cascade.context import EngineContext
from cascade.errors import StoreError
from cascade.transactions import run_in_transaction
from database.models import LedgerEntry, LedgerStatus
from database.upsert import insert_or_ignore

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {LedgerStatus.PROCESSED, LedgerStatus.FAILED, LedgerStatus.SKIPPED}


def _correlation(
    ledger_id: UUID, provider: str | None, external_event_id: str | None
) -> dict[str, str]:
    correlation = {"ledger_id": str(ledger_id)}
    if provider is not None:
        correlation["provider"] = provider
    if external_event_id is not None:
        correlation["external_event_id"] = external_event_id
    return correlation


@dataclass(frozen=True)
class IdempotencyCheckResult:
    """Outcome of check_and_record()."""

    is_duplicate: bool
    ledger_id: UUID
    existing_status: LedgerStatus | None = None


@dataclass(frozen=True)
class LedgerStats:
    """Per-provider processing statistics over a time window."""

    provider: str
    total_events: int
    processed_events: int
    failed_events: int
    pending_events: int
    skipped_events: int
    success_rate: float
    avg_processing_ms: float | None


class IdempotencyLedger:
    """
    Records inbound events and their processing outcome.

    Every method runs in its own transaction boundary; the ledger never
    schedules retries itself.
    """

    def __init__(self, context: EngineContext):
        self.context = context

    async def _run(self, work, **correlation: Any):
        settings = self.context.settings
        return await run_in_transaction(
            self.context.session_factory,
            work,
            max_retries=settings.TRANSACTION_MAX_RETRIES,
            retry_delay_ms=settings.TRANSACTION_RETRY_DELAY_MS,
            **correlation,
        )

    # ========================================================================
    # Recording
    # ========================================================================

    async def check_and_record(
        self,
        provider: str,
        external_event_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> IdempotencyCheckResult:
        """
        Record an event unless it was already seen.

        Args:
            provider: Event source (stripe, resend, twilio)
            external_event_id: Provider-assigned event id
            event_type: Provider event type (e.g. "payment_intent.succeeded")
            payload: Raw event body, stored for audit

        Returns:
            IdempotencyCheckResult; is_duplicate=True carries the existing row's
            id and status

        Raises:
            StoreError: If the store is unavailable
        """

        async def _work(session: AsyncSession) -> IdempotencyCheckResult:
            ledger_id = await insert_or_ignore(
                session,
                LedgerEntry,
                {
                    "provider": provider,
                    "external_event_id": external_event_id,
                    "event_type": event_type,
                    "payload": payload,
                    "status": LedgerStatus.PENDING,
                    "retry_count": 0,
                },
                ["provider", "external_event_id"],
            )
            if ledger_id is not None:
                return IdempotencyCheckResult(is_duplicate=False, ledger_id=ledger_id)

            existing = (
                await session.execute(
                    select(LedgerEntry.id, LedgerEntry.status).where(
                        LedgerEntry.provider == provider,
                        LedgerEntry.external_event_id == external_event_id,
                    )
                )
            ).one()
            return IdempotencyCheckResult(
                is_duplicate=True,
                ledger_id=existing.id,
                existing_status=existing.status,
            )

        result = await self._run(
            _work, provider=provider, external_event_id=external_event_id
        )

        log_extra = {
            "provider": provider,
            "external_event_id": external_event_id,
            "event_type": event_type,
            "ledger_id": str(result.ledger_id),
        }
        if result.is_duplicate:
            logger.info(
                f"Duplicate event detected: {provider}/{external_event_id} "
                f"(status={result.existing_status})",
                extra=log_extra,
            )
        else:
            logger.info(f"Event recorded: {provider}/{external_event_id}", extra=log_extra)
        return result

    async def mark_processed(
        self,
        ledger_id: UUID,
        status: LedgerStatus,
        duration_ms: int,
        error: str | None = None,
        *,
        provider: str | None = None,
        external_event_id: str | None = None,
    ) -> None:
        """
        Move a pending entry to its terminal state for this attempt.

        Args:
            ledger_id: Entry returned by check_and_record()
            status: processed, failed or skipped
            duration_ms: Handler wall-clock time
            error: Failure message (failed only)
            provider / external_event_id: Correlation ids for logs and StoreError

        Raises:
            ValueError: If status is not terminal
            StoreError: If the entry is missing or no longer pending
        """
        status = LedgerStatus(status)
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"mark_processed requires a terminal status, got '{status}'")
        correlation = _correlation(ledger_id, provider, external_event_id)

        async def _work(session: AsyncSession) -> None:
            now = datetime.now(UTC)
            result = await session.execute(
                update(LedgerEntry)
                .where(
                    LedgerEntry.id == ledger_id,
                    LedgerEntry.status == LedgerStatus.PENDING,
                )
                .values(
                    status=status,
                    processed_at=now,
                    processing_duration_ms=duration_ms,
                    error_message=error,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise StoreError(
                    f"Ledger entry {ledger_id} not found or not pending", **correlation
                )

        await self._run(_work, **correlation)
        logger.info(
            f"Ledger entry marked {status} in {duration_ms}ms",
            extra=correlation,
        )

    async def increment_retry(
        self,
        ledger_id: UUID,
        *,
        provider: str | None = None,
        external_event_id: str | None = None,
    ) -> int:
        """
        Bump the retry counter of an entry.

        Returns:
            The new retry count

        Raises:
            StoreError: If the entry does not exist
        """
        correlation = _correlation(ledger_id, provider, external_event_id)

        async def _work(session: AsyncSession) -> int:
            retry_count = (
                await session.execute(
                    update(LedgerEntry)
                    .where(LedgerEntry.id == ledger_id)
                    .values(
                        retry_count=LedgerEntry.retry_count + 1,
                        updated_at=datetime.now(UTC),
                    )
                    .returning(LedgerEntry.retry_count)
                    .execution_options(synchronize_session=False)
                )
            ).scalar_one_or_none()
            if retry_count is None:
                raise StoreError(f"Ledger entry {ledger_id} not found", **correlation)
            return retry_count

        retry_count = await self._run(_work, **correlation)
        logger.info(
            f"Ledger entry retry count is now {retry_count}",
            extra=correlation,
        )
        return retry_count

    async def claim_for_retry(
        self,
        ledger_id: UUID,
        max_retries: int,
        *,
        provider: str | None = None,
        external_event_id: str | None = None,
    ) -> int | None:
        """
        Atomically move a failed entry back to pending for another attempt.

        Only one concurrent redelivery can win the claim; the retry counter is
        incremented as part of the same UPDATE.

        Returns:
            New retry count, or None when the entry is not failed or its retry
            budget (max_retries) is spent
        """
        correlation = _correlation(ledger_id, provider, external_event_id)

        async def _work(session: AsyncSession) -> int | None:
            return (
                await session.execute(
                    update(LedgerEntry)
                    .where(
                        LedgerEntry.id == ledger_id,
                        LedgerEntry.status == LedgerStatus.FAILED,
                        LedgerEntry.retry_count < max_retries,
                    )
                    .values(
                        status=LedgerStatus.PENDING,
                        retry_count=LedgerEntry.retry_count + 1,
                        processed_at=None,
                        updated_at=datetime.now(UTC),
                    )
                    .returning(LedgerEntry.retry_count)
                    .execution_options(synchronize_session=False)
                )
            ).scalar_one_or_none()

        retry_count = await self._run(_work, **correlation)
        if retry_count is None:
            logger.info(
                "Failed ledger entry not claimable for retry",
                extra=correlation,
            )
        else:
            logger.info(
                f"Failed ledger entry claimed for retry #{retry_count}",
                extra=correlation,
            )
        return retry_count

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_event(self, provider: str, external_event_id: str) -> LedgerEntry | None:
        """Look up a ledger entry without recording anything."""

        async def _work(session: AsyncSession) -> LedgerEntry | None:
            return (
                await session.execute(
                    select(LedgerEntry).where(
                        LedgerEntry.provider == provider,
                        LedgerEntry.external_event_id == external_event_id,
                    )
                )
            ).scalar_one_or_none()

        return await self._run(
            _work, provider=provider, external_event_id=external_event_id
        )

    async def get_stats(self, provider: str | None = None, hours: int = 24) -> list[LedgerStats]:
        """
        Processing statistics per provider for events created in the last `hours`.

        Args:
            provider: Restrict to one provider (default: all)
            hours: Size of the window

        Returns:
            One LedgerStats per provider, ordered by provider name
        """
        since = datetime.now(UTC) - timedelta(hours=hours)

        def _count(status: LedgerStatus):
            return func.sum(case((LedgerEntry.status == status, 1), else_=0))

        stmt = (
            select(
                LedgerEntry.provider,
                func.count(LedgerEntry.id).label("total"),
                _count(LedgerStatus.PROCESSED).label("processed"),
                _count(LedgerStatus.FAILED).label("failed"),
                _count(LedgerStatus.PENDING).label("pending"),
                _count(LedgerStatus.SKIPPED).label("skipped"),
                func.avg(LedgerEntry.processing_duration_ms).label("avg_ms"),
            )
            .where(LedgerEntry.created_at >= since)
            .group_by(LedgerEntry.provider)
            .order_by(LedgerEntry.provider)
        )
        if provider is not None:
            stmt = stmt.where(LedgerEntry.provider == provider)

        async def _work(session: AsyncSession):
            return (await session.execute(stmt)).all()

        rows = await self._run(_work, provider=provider)

        stats = []
        for row in rows:
            total = int(row.total or 0)
            processed = int(row.processed or 0)
            stats.append(
                LedgerStats(
                    provider=row.provider,
                    total_events=total,
                    processed_events=processed,
                    failed_events=int(row.failed or 0),
                    pending_events=int(row.pending or 0),
                    skipped_events=int(row.skipped or 0),
                    success_rate=round(processed / total * 100, 2) if total else 0.0,
                    avg_processing_ms=(
                        round(float(row.avg_ms), 2) if row.avg_ms is not None else None
                    ),
                )
            )
        return stats
