"""
At-most-once processing of inbound events.

process_with_idempotency() wraps an event handler with the ledger:

1. check_and_record() - duplicates raise DuplicateEvent, handler not invoked
2. Build a TransactionContext for the handler
3. Await the handler
4. Success -> ledger entry marked processed with the elapsed time
5. Failure -> ledger entry marked failed, original exception re-raised

A redelivered event whose earlier attempt failed runs again only when
LEDGER_RETRY_FAILED_EVENTS is on and the ledger grants the retry claim.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from cascade.errors import DuplicateEvent
from cascade.ledger.idempotency_ledger import IdempotencyLedger
from database.models import LedgerStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TransactionContext:
    """Everything a handler knows about the event it is processing."""

    ledger_id: UUID
    provider: str
    external_event_id: str
    event_type: str
    start_time: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessingOutcome(Generic[T]):
    """Result of a handled (or skipped) event."""

    result: T | None
    is_duplicate: bool = False
    ledger_id: UUID | None = None


EventHandler = Callable[[TransactionContext], Awaitable[T]]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def _admit_duplicate(
    ledger: IdempotencyLedger,
    provider: str,
    external_event_id: str,
    ledger_id: UUID,
    existing_status: LedgerStatus | None,
) -> None:
    """Raise DuplicateEvent unless a failed entry can be claimed for retry."""
    settings = ledger.context.settings
    if existing_status == LedgerStatus.FAILED and settings.LEDGER_RETRY_FAILED_EVENTS:
        claimed = await ledger.claim_for_retry(
            ledger_id,
            settings.LEDGER_MAX_RETRIES,
            provider=provider,
            external_event_id=external_event_id,
        )
        if claimed is not None:
            return
    raise DuplicateEvent(
        provider,
        external_event_id,
        str(existing_status) if existing_status is not None else None,
    )


async def process_with_idempotency(
    ledger: IdempotencyLedger,
    provider: str,
    external_event_id: str,
    event_type: str,
    payload: dict[str, Any],
    handler: EventHandler[T],
) -> ProcessingOutcome[T]:
    """
    Run handler at most once per (provider, external_event_id).

    Args:
        ledger: Idempotency ledger
        provider: Event source (stripe, resend, twilio)
        external_event_id: Provider-assigned event id
        event_type: Provider event type
        payload: Raw event body
        handler: Coroutine function receiving the TransactionContext

    Returns:
        ProcessingOutcome with the handler's result

    Raises:
        DuplicateEvent: The event was already recorded (handler not invoked)
        StoreError: The ledger could not be read or written
        Exception: Whatever the handler raised, after the entry is marked failed
    """
    log_extra = {
        "provider": provider,
        "external_event_id": external_event_id,
        "event_type": event_type,
    }

    check = await ledger.check_and_record(provider, external_event_id, event_type, payload)
    if check.is_duplicate:
        await _admit_duplicate(
            ledger, provider, external_event_id, check.ledger_id, check.existing_status
        )
        logger.info("Retrying previously failed event", extra=log_extra)

    log_extra["ledger_id"] = str(check.ledger_id)
    context = TransactionContext(
        ledger_id=check.ledger_id,
        provider=provider,
        external_event_id=external_event_id,
        event_type=event_type,
        start_time=datetime.now(UTC),
        payload=payload,
    )
    started = time.perf_counter()

    try:
        result = await handler(context)
    except Exception as handler_error:
        duration_ms = _elapsed_ms(started)
        logger.error(
            f"Handler failed for {provider}/{external_event_id} after {duration_ms}ms: {handler_error}",
            extra=log_extra,
            exc_info=True,
        )
        try:
            await ledger.mark_processed(
                check.ledger_id,
                LedgerStatus.FAILED,
                duration_ms,
                str(handler_error),
                provider=provider,
                external_event_id=external_event_id,
            )
        except Exception as mark_error:
            # The handler's exception is the one the caller must see
            logger.error(
                f"Could not mark ledger entry failed: {mark_error}",
                extra=log_extra,
                exc_info=True,
            )
        raise

    duration_ms = _elapsed_ms(started)
    await ledger.mark_processed(
        check.ledger_id,
        LedgerStatus.PROCESSED,
        duration_ms,
        provider=provider,
        external_event_id=external_event_id,
    )
    logger.info(
        f"Event processed: {provider}/{external_event_id} in {duration_ms}ms",
        extra=log_extra,
    )
    return ProcessingOutcome(result=result, is_duplicate=False, ledger_id=check.ledger_id)


async def skip_event(
    ledger: IdempotencyLedger,
    provider: str,
    external_event_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> ProcessingOutcome[None]:
    """
    Record an event nobody handles as skipped.

    Still deduplicated: a redelivery raises DuplicateEvent.
    """
    check = await ledger.check_and_record(provider, external_event_id, event_type, payload)
    if check.is_duplicate:
        raise DuplicateEvent(
            provider,
            external_event_id,
            str(check.existing_status) if check.existing_status is not None else None,
        )

    await ledger.mark_processed(
        check.ledger_id,
        LedgerStatus.SKIPPED,
        0,
        provider=provider,
        external_event_id=external_event_id,
    )
    logger.info(
        f"No handler for {provider} event type '{event_type}', marked skipped",
        extra={
            "provider": provider,
            "external_event_id": external_event_id,
            "event_type": event_type,
            "ledger_id": str(check.ledger_id),
        },
    )
    return ProcessingOutcome(result=None, is_duplicate=False, ledger_id=check.ledger_id)
