"""Resolve feed date-times (UTC, zoned or floating) into UTC instants."""
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.errors import InvalidTimeError
from processor.models import RawDateTime, TimeEncoding

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'UTC'
DEFAULT_EVENT_LENGTH = timedelta(hours=1)


def get_zone(tz_name: Optional[str]) -> Optional[tzinfo]:
    """Return a tzinfo for an IANA name, or None if it is unknown."""
    if not tz_name or not isinstance(tz_name, str):
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.debug(f"Unknown timezone '{tz_name}': {e}")
        return None


class TimezoneResolver:
    """Turns raw start/end components into UTC datetimes.

    Floating times are read in the destination owner's timezone, which is
    fixed per run and passed in when the resolver is created.
    """

    def __init__(self, default_timezone: str = DEFAULT_TIMEZONE):
        zone = get_zone(default_timezone)
        if zone is None:
            logger.warning(
                f"Invalid owner timezone '{default_timezone}', "
                f"falling back to {DEFAULT_TIMEZONE}"
            )
            zone = timezone.utc
            default_timezone = DEFAULT_TIMEZONE
        self.default_timezone = default_timezone
        self.default_zone = zone

    def resolve(
        self,
        start: RawDateTime,
        end: Optional[RawDateTime] = None
    ) -> Tuple[datetime, datetime]:
        """
        Resolve an event's start and end into UTC.

        Args:
            start: Raw start components
            end: Raw end components, if the feed had any

        Returns:
            Tuple of (start_utc, end_utc), both timezone-aware

        Raises:
            InvalidTimeError: If the start cannot be resolved
        """
        start_zone = self._zone_for(start)
        start_utc = self._to_utc(start, start_zone)
        if start_utc is None:
            raise InvalidTimeError(
                f"Invalid start date-time {start.components.isoformat()} "
                f"(timezone: {start.tzid or start.encoding.value})"
            )

        end_utc = None
        if end is not None:
            # A floating end follows the start; a zoned end keeps its own zone
            end_zone = start_zone
            if end.encoding != TimeEncoding.FLOATING:
                end_zone = self._zone_for(end) or start_zone
            end_utc = self._to_utc(end, end_zone)

        if end_utc is None:
            logger.warning(
                f"Invalid end date for event starting {start_utc.isoformat()}, "
                f"defaulting to 1 hour after start"
            )
            end_utc = start_utc + DEFAULT_EVENT_LENGTH

        return start_utc, end_utc

    def _zone_for(self, value: RawDateTime) -> Optional[tzinfo]:
        if value.encoding == TimeEncoding.UTC:
            return timezone.utc
        if value.encoding == TimeEncoding.ZONED:
            return value.tz or get_zone(value.tzid)
        return self.default_zone

    @staticmethod
    def _to_utc(value: RawDateTime, zone: Optional[tzinfo]) -> Optional[datetime]:
        if zone is None:
            return None
        try:
            return value.components.replace(tzinfo=zone).astimezone(timezone.utc)
        except (OverflowError, ValueError) as e:
            logger.debug(f"Could not convert {value.components!r} to UTC: {e}")
            return None
