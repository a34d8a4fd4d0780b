"""Per-subject inputs shared by the derivation rules."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class DerivationScope:
    """
    The subject a rule runs for.

    Attributes:
        client_id: Subject id; only its rows are read or written
        event_date: Reference date for stays without any guest date
        timezone: Zone used to turn timestamps into dates and back
        check_in_hour: Hour of day for hotel check-in schedule entries
    """

    client_id: UUID
    event_date: date | None
    timezone: ZoneInfo
    check_in_hour: int = 15
