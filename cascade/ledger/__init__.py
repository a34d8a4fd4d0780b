"""
Idempotency ledger and at-most-once event processing.
"""

from cascade.ledger.event_processor import (
    ProcessingOutcome,
    TransactionContext,
    process_with_idempotency,
    skip_event,
)
from cascade.ledger.handlers import HandlerRegistry
from cascade.ledger.idempotency_ledger import (
    IdempotencyCheckResult,
    IdempotencyLedger,
    LedgerStats,
)

__all__ = [
    "HandlerRegistry",
    "IdempotencyCheckResult",
    "IdempotencyLedger",
    "LedgerStats",
    "ProcessingOutcome",
    "TransactionContext",
    "process_with_idempotency",
    "skip_event",
]
