"""Unit tests for TimezoneResolver."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from processor.errors import InvalidTimeError
from processor.models import RawDateTime, TimeEncoding
from processor.timezone_resolver import TimezoneResolver, get_zone


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def raw(*args, encoding=TimeEncoding.FLOATING, tzid=None, tz=None):
    return RawDateTime(components=datetime(*args), encoding=encoding, tzid=tzid, tz=tz)


class TestTimezoneResolver:
    """Test cases for TimezoneResolver class."""

    def test_utc_components_stored_exactly(self):
        start, end = TimezoneResolver('America/New_York').resolve(
            raw(2024, 3, 1, 18, 0, 0, encoding=TimeEncoding.UTC),
            raw(2024, 3, 1, 19, 0, 0, encoding=TimeEncoding.UTC)
        )

        assert start == utc(2024, 3, 1, 18, 0, 0)
        assert end == utc(2024, 3, 1, 19, 0, 0)

    def test_zoned_components_converted(self):
        start, end = TimezoneResolver().resolve(
            raw(2024, 3, 1, 13, 0, 0, encoding=TimeEncoding.ZONED, tzid='America/Chicago'),
            raw(2024, 3, 1, 14, 30, 0, encoding=TimeEncoding.ZONED, tzid='America/Chicago')
        )

        assert start == utc(2024, 3, 1, 19, 0, 0)
        assert end == utc(2024, 3, 1, 20, 30, 0)

    def test_zoned_uses_parsed_tzinfo(self):
        start, _ = TimezoneResolver().resolve(
            raw(2024, 3, 1, 13, 0, 0, encoding=TimeEncoding.ZONED,
                tzid='Central Standard Time', tz=ZoneInfo('America/Chicago'))
        )

        assert start == utc(2024, 3, 1, 19, 0, 0)

    def test_floating_uses_owner_timezone(self):
        start, end = TimezoneResolver('America/Los_Angeles').resolve(
            raw(2024, 3, 1, 9, 0, 0),
            raw(2024, 3, 1, 10, 0, 0)
        )

        assert start == utc(2024, 3, 1, 17, 0, 0)
        assert end == utc(2024, 3, 1, 18, 0, 0)

    def test_floating_defaults_to_utc(self):
        start, _ = TimezoneResolver().resolve(raw(2024, 3, 1, 9, 0, 0))
        assert start == utc(2024, 3, 1, 9, 0, 0)

    def test_invalid_owner_timezone_falls_back_to_utc(self):
        resolver = TimezoneResolver('Mars/Olympus_Mons')

        assert resolver.default_timezone == 'UTC'
        start, _ = resolver.resolve(raw(2024, 3, 1, 9, 0, 0))
        assert start == utc(2024, 3, 1, 9, 0, 0)

    def test_end_without_zone_uses_start_zone(self):
        start, end = TimezoneResolver('Asia/Tokyo').resolve(
            raw(2024, 3, 1, 13, 0, 0, encoding=TimeEncoding.ZONED, tzid='America/Chicago'),
            raw(2024, 3, 1, 15, 0, 0)
        )

        assert start == utc(2024, 3, 1, 19, 0, 0)
        assert end == utc(2024, 3, 1, 21, 0, 0)

    def test_end_keeps_its_own_zone(self):
        _, end = TimezoneResolver().resolve(
            raw(2024, 3, 1, 13, 0, 0, encoding=TimeEncoding.ZONED, tzid='America/Chicago'),
            raw(2024, 3, 1, 14, 0, 0, encoding=TimeEncoding.ZONED, tzid='America/New_York')
        )

        assert end == utc(2024, 3, 1, 19, 0, 0)

    def test_missing_end_defaults_to_one_hour(self):
        start, end = TimezoneResolver().resolve(
            raw(2024, 3, 1, 18, 0, 0, encoding=TimeEncoding.UTC), None
        )

        assert end - start == timedelta(hours=1)

    def test_unresolvable_end_defaults_to_one_hour(self):
        start, end = TimezoneResolver().resolve(
            raw(2024, 3, 1, 18, 0, 0, encoding=TimeEncoding.UTC),
            raw(9999, 12, 31, 23, 0, 0, encoding=TimeEncoding.ZONED, tzid='America/Los_Angeles')
        )

        assert end == start + timedelta(hours=1)

    def test_unknown_start_zone_raises(self):
        with pytest.raises(InvalidTimeError):
            TimezoneResolver().resolve(
                raw(2024, 3, 1, 13, 0, 0, encoding=TimeEncoding.ZONED, tzid='Nowhere/Special')
            )

    def test_dst_offset_applied(self):
        # New York is on EDT (UTC-4) in July
        start, _ = TimezoneResolver().resolve(
            raw(2024, 7, 1, 10, 0, 0, encoding=TimeEncoding.ZONED, tzid='America/New_York')
        )

        assert start == utc(2024, 7, 1, 14, 0, 0)

    def test_results_are_timezone_aware(self):
        start, end = TimezoneResolver('Europe/London').resolve(raw(2024, 3, 1, 9, 0, 0))

        assert start.tzinfo is not None
        assert end.tzinfo is not None


@pytest.mark.parametrize('name, known', [
    ('America/Chicago', True),
    ('UTC', True),
    ('Not/AZone', False),
    ('', False),
    (None, False),
    (Decimal(5), False),
    (5, False),
])
def test_get_zone(name, known):
    assert (get_zone(name) is not None) == known
