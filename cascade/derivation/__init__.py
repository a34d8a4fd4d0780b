"""
Derivation rules.

Each rule is a coroutine `rule(session, scope) -> int` that inserts the
derived rows missing for one subject and returns how many it created.
Rules only ever insert; existing derived rows are left alone.
"""

from cascade.derivation.accommodation import sync_guest_accommodation
from cascade.derivation.schedule import sync_accommodation_schedule, sync_transport_schedule
from cascade.derivation.scope import DerivationScope
from cascade.derivation.transport import sync_guest_transport

__all__ = [
    "DerivationScope",
    "sync_accommodation_schedule",
    "sync_guest_accommodation",
    "sync_guest_transport",
    "sync_transport_schedule",
]
