"""
Unit tests for process_with_idempotency() and skip_event().

The ledger is mocked; integration tests cover the real store.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest

from cascade.errors import DuplicateEvent, StoreError
from cascade.ledger import (
    HandlerRegistry,
    IdempotencyCheckResult,
    TransactionContext,
    process_with_idempotency,
    skip_event,
)
from database.models import LedgerStatus

LEDGER_ID = UUID("550e8400-e29b-41d4-a716-446655440000")


@pytest.fixture
def mock_ledger(settings):
    ledger = MagicMock()
    ledger.context.settings = settings
    ledger.check_and_record = AsyncMock(
        return_value=IdempotencyCheckResult(is_duplicate=False, ledger_id=LEDGER_ID)
    )
    ledger.mark_processed = AsyncMock()
    ledger.claim_for_retry = AsyncMock(return_value=None)
    return ledger


def _duplicate(status: LedgerStatus) -> IdempotencyCheckResult:
    return IdempotencyCheckResult(is_duplicate=True, ledger_id=LEDGER_ID, existing_status=status)


class TestProcessWithIdempotency:
    """First delivery, duplicates and handler failures."""

    @pytest.mark.asyncio
    async def test_first_delivery_runs_handler_and_marks_processed(self, mock_ledger):
        handler = AsyncMock(return_value={"ok": True})

        outcome = await process_with_idempotency(
            mock_ledger, "stripe", "evt_1", "payment_intent.succeeded", {"id": "evt_1"}, handler
        )

        assert outcome.result == {"ok": True}
        assert outcome.is_duplicate is False
        assert outcome.ledger_id == LEDGER_ID

        context = handler.await_args.args[0]
        assert isinstance(context, TransactionContext)
        assert context.ledger_id == LEDGER_ID
        assert context.provider == "stripe"
        assert context.external_event_id == "evt_1"
        assert context.event_type == "payment_intent.succeeded"
        assert context.start_time.tzinfo is not None

        args = mock_ledger.mark_processed.await_args.args
        assert args[0] == LEDGER_ID
        assert args[1] == LedgerStatus.PROCESSED
        assert args[2] >= 0

    @pytest.mark.asyncio
    async def test_duplicate_raises_without_invoking_handler(self, mock_ledger):
        mock_ledger.check_and_record.return_value = _duplicate(LedgerStatus.PROCESSED)
        handler = AsyncMock()

        with pytest.raises(DuplicateEvent) as exc_info:
            await process_with_idempotency(mock_ledger, "stripe", "evt_1", "x", {}, handler)

        handler.assert_not_awaited()
        mock_ledger.mark_processed.assert_not_awaited()
        assert exc_info.value.existing_status == "processed"

    @pytest.mark.asyncio
    async def test_handler_failure_marks_failed_and_reraises(self, mock_ledger):
        handler = AsyncMock(side_effect=RuntimeError("downstream unavailable"))

        with pytest.raises(RuntimeError, match="downstream unavailable"):
            await process_with_idempotency(mock_ledger, "resend", "em_1", "email.bounced", {}, handler)

        args = mock_ledger.mark_processed.await_args.args
        assert args[1] == LedgerStatus.FAILED
        assert args[3] == "downstream unavailable"
        assert mock_ledger.mark_processed.await_args.kwargs == {
            "provider": "resend",
            "external_event_id": "em_1",
        }

    @pytest.mark.asyncio
    async def test_original_error_raised_when_marking_failure_fails(self, mock_ledger):
        handler = AsyncMock(side_effect=RuntimeError("handler broke"))
        mock_ledger.mark_processed.side_effect = StoreError("ledger down")

        with pytest.raises(RuntimeError, match="handler broke"):
            await process_with_idempotency(mock_ledger, "twilio", "SM1", "delivered", {}, handler)

    @pytest.mark.asyncio
    async def test_failed_duplicate_retried_when_claim_granted(self, mock_ledger):
        mock_ledger.check_and_record.return_value = _duplicate(LedgerStatus.FAILED)
        mock_ledger.claim_for_retry.return_value = 1
        handler = AsyncMock(return_value="again")

        outcome = await process_with_idempotency(mock_ledger, "stripe", "evt_1", "x", {}, handler)

        assert outcome.result == "again"
        mock_ledger.claim_for_retry.assert_awaited_once_with(
            LEDGER_ID, 2, provider="stripe", external_event_id="evt_1"
        )
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_duplicate_rejected_when_claim_refused(self, mock_ledger):
        mock_ledger.check_and_record.return_value = _duplicate(LedgerStatus.FAILED)
        handler = AsyncMock()

        with pytest.raises(DuplicateEvent):
            await process_with_idempotency(mock_ledger, "stripe", "evt_1", "x", {}, handler)

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_duplicate_not_retried_when_disabled(self, mock_ledger, settings):
        settings.LEDGER_RETRY_FAILED_EVENTS = False
        mock_ledger.check_and_record.return_value = _duplicate(LedgerStatus.FAILED)

        with pytest.raises(DuplicateEvent):
            await process_with_idempotency(mock_ledger, "stripe", "evt_1", "x", {}, AsyncMock())

        mock_ledger.claim_for_retry.assert_not_awaited()


class TestSkipEvent:
    @pytest.mark.asyncio
    async def test_records_event_as_skipped(self, mock_ledger):
        outcome = await skip_event(mock_ledger, "twilio", "SM1", "queued", {})

        assert outcome.result is None
        mock_ledger.mark_processed.assert_awaited_once_with(
            LEDGER_ID, LedgerStatus.SKIPPED, 0, provider="twilio", external_event_id="SM1"
        )

    @pytest.mark.asyncio
    async def test_duplicate_skip_raises(self, mock_ledger):
        mock_ledger.check_and_record.return_value = _duplicate(LedgerStatus.SKIPPED)

        with pytest.raises(DuplicateEvent):
            await skip_event(mock_ledger, "twilio", "SM1", "queued", {})


class TestHandlerRegistry:
    def test_exact_match_before_wildcard(self):
        registry = HandlerRegistry()

        @registry.register("stripe", "charge.refunded")
        async def on_refund(context):
            return "refund"

        @registry.register("stripe")
        async def on_any(context):
            return "any"

        assert registry.get("stripe", "charge.refunded") is on_refund
        assert registry.get("stripe", "invoice.paid") is on_any
        assert registry.get("resend", "email.sent") is None
        assert len(registry) == 2
