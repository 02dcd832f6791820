"""ICS feed parser: feed metadata and raw event blocks."""
import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from icalendar import Calendar

from processor.errors import ParseError
from processor.models import ParsedFeed, RawDateTime, RawEvent, TimeEncoding

logger = logging.getLogger(__name__)

HTML_TAG = re.compile(r'<[a-zA-Z/][^>]*>')

# Team name hints taken from the first event when the feed has no name
SUMMARY_NAME_PATTERNS = (
    re.compile(r'vs\s+(.+?)(?:\s|$)', re.IGNORECASE),
    re.compile(r'(.+?)\s+vs', re.IGNORECASE),
)
LOCATION_NAME_PATTERN = re.compile(r'(.+?)\s+(?:field|court|gym)', re.IGNORECASE)
BOILERPLATE_WORDS = re.compile(r'calendar|schedule', re.IGNORECASE)


class FeedParser:
    """Parses raw ICS text into a ParsedFeed."""

    def parse(self, feed_text: str, feed_url: str = '', provider: str = 'Team') -> ParsedFeed:
        """
        Parse feed text.

        Args:
            feed_text: Raw ICS document
            feed_url: URL the feed came from, used for the fallback name
            provider: Provider label used in the fallback name

        Returns:
            ParsedFeed with display name and raw events

        Raises:
            ParseError: If the text is not a calendar document
        """
        calendar = self._load_calendar(feed_text)

        vevents = [c for c in calendar.subcomponents if c.name == 'VEVENT']
        logger.info(f"Parsed calendar data, found {len(vevents)} event blocks")

        events = []
        for index, vevent in enumerate(vevents):
            try:
                events.append(self._parse_event(vevent))
            except ValueError as e:
                summary = str(vevent.get('SUMMARY', '')) or f"#{index}"
                logger.warning(f"Skipping event {summary!r}: {e}")

        name = self.derive_feed_name(calendar, vevents, feed_url, provider)
        description = self._first_text(calendar, 'X-WR-CALDESC', 'DESCRIPTION')

        return ParsedFeed(
            name=name,
            description=description,
            events=events,
            event_block_count=len(vevents)
        )

    def derive_feed_name(self, calendar, vevents, feed_url: str, provider: str = 'Team') -> str:
        """
        Pick a display name for the feed.

        Explicit feed properties win, then a guess from the first event,
        then a name built from the URL's last path segment.
        """
        candidates = [self._first_text(calendar, 'X-WR-CALNAME', 'NAME', 'SUMMARY')]
        if vevents:
            candidates.append(self._name_from_event(vevents[0]))

        for candidate in candidates:
            cleaned = self.clean_name(candidate)
            if cleaned:
                return cleaned

        return f"{provider} Team {self._url_segment(feed_url)}"

    @staticmethod
    def clean_name(name: Optional[str]) -> str:
        if not name:
            return ''
        name = BOILERPLATE_WORDS.sub('', name)
        return ' '.join(name.split())

    def _load_calendar(self, feed_text: str) -> Calendar:
        if not feed_text or 'BEGIN:VCALENDAR' not in feed_text.upper():
            raise ParseError('Invalid calendar format - not a valid ICS file')

        try:
            calendar = Calendar.from_ical(feed_text)
        except ValueError as e:
            raise ParseError(f"Failed to parse calendar data: {e}", details=str(e)) from e

        if calendar.name != 'VCALENDAR':
            raise ParseError(f"Unexpected top-level component: {calendar.name}")
        return calendar

    def _parse_event(self, vevent) -> RawEvent:
        start = self._parse_datetime(vevent, 'DTSTART')
        if start is None:
            raise ValueError('missing DTSTART')

        try:
            end = self._parse_datetime(vevent, 'DTEND')
        except ValueError as e:
            logger.warning(f"Ignoring unreadable DTEND: {e}")
            end = None
        if end is None:
            end = self._end_from_duration(vevent, start)

        uid = self._text(vevent.get('UID')) or None
        status = self._text(vevent.get('STATUS')).upper() or None

        return RawEvent(
            uid=uid,
            summary=self._text(vevent.get('SUMMARY')),
            description=self.clean_description(self._text(vevent.get('DESCRIPTION'))),
            location=self._text(vevent.get('LOCATION')),
            start=start,
            end=end,
            venue_title=self._venue_title(vevent),
            status=status
        )

    def _parse_datetime(self, vevent, prop_name: str) -> Optional[RawDateTime]:
        prop = vevent.get(prop_name)
        if prop is None:
            return None
        if isinstance(prop, list):
            prop = prop[0]

        try:
            value = prop.dt
        except AttributeError as e:
            raise ValueError(f"unreadable {prop_name}") from e

        tzid = prop.params.get('TZID') if hasattr(prop, 'params') else None

        if isinstance(value, datetime):
            if tzid:
                return RawDateTime(
                    components=value.replace(tzinfo=None),
                    encoding=TimeEncoding.ZONED,
                    tzid=str(tzid),
                    tz=value.tzinfo
                )
            if value.tzinfo is not None:
                utc_value = value.astimezone(timezone.utc)
                return RawDateTime(
                    components=utc_value.replace(tzinfo=None),
                    encoding=TimeEncoding.UTC
                )
            return RawDateTime(components=value, encoding=TimeEncoding.FLOATING)

        if isinstance(value, date):
            return RawDateTime(
                components=datetime(value.year, value.month, value.day),
                encoding=TimeEncoding.FLOATING,
                is_date=True
            )

        raise ValueError(f"unsupported {prop_name} value: {value!r}")

    def _end_from_duration(self, vevent, start: RawDateTime) -> Optional[RawDateTime]:
        duration = vevent.get('DURATION')
        delta = None
        if duration is not None:
            try:
                delta = duration.dt
            except AttributeError:
                logger.warning('Ignoring unreadable DURATION')
        if not isinstance(delta, timedelta):
            delta = timedelta(days=1) if start.is_date else None
        if delta is None:
            return None

        return RawDateTime(
            components=start.components + delta,
            encoding=start.encoding,
            tzid=start.tzid,
            tz=start.tz,
            is_date=start.is_date
        )

    def _venue_title(self, vevent) -> Optional[str]:
        for prop_name in ('X-APPLE-STRUCTURED-LOCATION', 'LOCATION'):
            prop = vevent.get(prop_name)
            if isinstance(prop, list):
                prop = prop[0]
            params = getattr(prop, 'params', None)
            if params and params.get('X-TITLE'):
                return str(params['X-TITLE']).strip() or None
        return None

    def _name_from_event(self, vevent) -> Optional[str]:
        summary = self._text(vevent.get('SUMMARY'))
        location = self._text(vevent.get('LOCATION'))

        for pattern in SUMMARY_NAME_PATTERNS:
            match = pattern.search(summary)
            if match:
                return match.group(1).strip()

        match = LOCATION_NAME_PATTERN.search(location)
        if match:
            return match.group(1).strip()
        return None

    @staticmethod
    def clean_description(text: str) -> str:
        """Strip HTML markup some providers put in DESCRIPTION."""
        if not text or not HTML_TAG.search(text):
            return text
        soup = BeautifulSoup(text, 'html.parser')
        return soup.get_text('\n', strip=True)

    def _first_text(self, component, *names: str) -> Optional[str]:
        for name in names:
            value = self._text(component.get(name))
            if value:
                return value
        return None

    @staticmethod
    def _text(value) -> str:
        if value is None:
            return ''
        if isinstance(value, list):
            value = value[0] if value else ''
        return str(value).strip()

    @staticmethod
    def _url_segment(feed_url: str) -> str:
        path = urlparse(feed_url or '').path.rstrip('/')
        segment = path.split('/')[-1] if path else ''
        if segment.lower().endswith('.ics'):
            segment = segment[:-4]
        return segment or 'Calendar'
