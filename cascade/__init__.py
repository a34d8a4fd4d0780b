"""
Idempotent event ledger and cascade sync engine.

- cascade.ledger: at-most-once processing of provider webhooks
- cascade.services: derivation of stays, transport legs and schedule entries
- cascade.transactions: the all-or-nothing transaction boundary
"""

from cascade.context import EngineContext
from cascade.errors import (
    CascadeError,
    DuplicateEvent,
    StoreError,
    SubjectNotFound,
    UnknownEntityType,
)

__all__ = [
    "CascadeError",
    "DuplicateEvent",
    "EngineContext",
    "StoreError",
    "SubjectNotFound",
    "UnknownEntityType",
]
