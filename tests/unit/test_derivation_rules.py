"""
Unit tests for the pure parts of the derivation rules.

Tests coverage:
- Check-in / check-out priority (explicit > travel date > event date ± 1 day)
- Timestamp -> local date conversion (naive timestamps are UTC)
- Schedule start time construction
- vehicle_info and transport location formatting
"""

from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

from cascade.derivation.dates import (
    clamp_hour,
    local_date,
    local_time,
    resolve_check_in,
    resolve_check_out,
    start_time_on,
)
from cascade.derivation.schedule import transport_location
from cascade.derivation.transport import vehicle_info

UTC_TZ = ZoneInfo("UTC")
MADRID_TZ = ZoneInfo("Europe/Madrid")
EVENT_DATE = date(2026, 3, 15)


class TestResolveCheckIn:
    """Check-in date priority."""

    def test_arrival_date_used_when_no_explicit_check_in(self):
        """Arrival 2026-03-14T10:00Z gives check-in 2026-03-14."""
        arrival = datetime(2026, 3, 14, 10, 0, tzinfo=UTC)

        assert resolve_check_in(None, arrival, EVENT_DATE, UTC_TZ) == date(2026, 3, 14)

    def test_explicit_check_in_wins_over_arrival(self):
        arrival = datetime(2026, 3, 14, 10, 0, tzinfo=UTC)

        result = resolve_check_in(date(2026, 3, 12), arrival, EVENT_DATE, UTC_TZ)

        assert result == date(2026, 3, 12)

    def test_falls_back_to_day_before_event(self):
        assert resolve_check_in(None, None, EVENT_DATE, UTC_TZ) == date(2026, 3, 14)

    def test_none_without_any_date(self):
        assert resolve_check_in(None, None, None, UTC_TZ) is None

    def test_arrival_converted_to_configured_timezone(self):
        """23:30Z on the 14th is already the 15th in Madrid."""
        arrival = datetime(2026, 3, 14, 23, 30, tzinfo=UTC)

        assert resolve_check_in(None, arrival, EVENT_DATE, MADRID_TZ) == date(2026, 3, 15)


class TestResolveCheckOut:
    """Check-out date priority."""

    def test_departure_date_used_when_no_explicit_check_out(self):
        departure = datetime(2026, 3, 17, 18, 0, tzinfo=UTC)

        assert resolve_check_out(None, departure, EVENT_DATE, UTC_TZ) == date(2026, 3, 17)

    def test_explicit_check_out_wins(self):
        departure = datetime(2026, 3, 17, 18, 0, tzinfo=UTC)

        result = resolve_check_out(date(2026, 3, 18), departure, EVENT_DATE, UTC_TZ)

        assert result == date(2026, 3, 18)

    def test_falls_back_to_day_after_event(self):
        assert resolve_check_out(None, None, EVENT_DATE, UTC_TZ) == date(2026, 3, 16)


class TestLocalConversion:
    """Naive timestamps come back from SQLite and are stored as UTC."""

    def test_naive_timestamp_treated_as_utc(self):
        naive = datetime(2026, 3, 14, 23, 30)

        assert local_date(naive, MADRID_TZ) == date(2026, 3, 15)
        assert local_time(naive, MADRID_TZ) == time(0, 30)

    def test_none_passes_through(self):
        assert local_date(None, UTC_TZ) is None
        assert local_time(None, UTC_TZ) is None


class TestStartTime:
    def test_start_time_at_given_wall_clock(self):
        start = start_time_on(date(2026, 3, 14), time(15, 0), MADRID_TZ)

        assert start.hour == 15
        assert start.tzinfo == MADRID_TZ
        assert start.date() == date(2026, 3, 14)

    def test_midnight_when_no_time(self):
        start = start_time_on(date(2026, 3, 14), None, UTC_TZ)

        assert (start.hour, start.minute) == (0, 0)

    def test_clamp_hour(self):
        assert clamp_hour(-1) == 0
        assert clamp_hour(15) == 15
        assert clamp_hour(30) == 23


class TestFormatting:
    def test_vehicle_info_with_both_parts(self):
        assert vehicle_info("shuttle", "flight") == "shuttle (flight)"

    def test_vehicle_info_with_one_part(self):
        assert vehicle_info("shuttle", None) == "shuttle"
        assert vehicle_info(None, "train") == "train"
        assert vehicle_info(None, None) is None

    def test_transport_location(self):
        assert transport_location("Airport", "Hotel Sol") == "From: Airport → To: Hotel Sol"
        assert transport_location(None, "Hotel Sol") == "To: Hotel Sol"
        assert transport_location(None, None) is None
