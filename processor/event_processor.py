"""Event processor: turns raw feed events into normalized events."""
import hashlib
import logging
import time
from typing import Dict, List, Optional, Tuple

from processor.classifier import EventClassifier
from processor.errors import InvalidTimeError
from processor.models import FeedConnection, NormalizedEvent, RawEvent
from processor.sports import provider_color, sport_color
from processor.timezone_resolver import TimezoneResolver

logger = logging.getLogger(__name__)


def deduplicate_events(events: List[NormalizedEvent]) -> List[NormalizedEvent]:
    """Keep the first event for each reconciliation key, preserving order."""
    unique: Dict[str, NormalizedEvent] = {}
    for event in events:
        if event.sync_key not in unique:
            unique[event.sync_key] = event
    if len(unique) != len(events):
        logger.info(
            f"Deduplicated events: {len(unique)} from original: {len(events)}"
        )
    return list(unique.values())


class EventProcessor:
    """Resolves times and classifies each raw event for one feed run."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 5000

    def __init__(
        self,
        owner_timezone: str = 'UTC',
        classifier: Optional[EventClassifier] = None
    ):
        """
        Initialize the processor.

        Args:
            owner_timezone: Zone used for floating feed times
            classifier: Summary/location classifier (default: EventClassifier)
        """
        self.resolver = TimezoneResolver(owner_timezone)
        self.classifier = classifier or EventClassifier()

    def process_events(
        self,
        raw_events: List[RawEvent],
        connection: FeedConnection,
        profile_id: Optional[str]
    ) -> Tuple[List[NormalizedEvent], int]:
        """
        Normalize raw events for a feed connection.

        Events whose start time cannot be resolved are logged and left out.

        Args:
            raw_events: Events from the feed parser
            connection: Feed connection the events belong to
            profile_id: Destination profile

        Returns:
            Tuple of (normalized events, number of skipped events)
        """
        processed = []
        skipped = 0

        for raw in raw_events:
            try:
                processed.append(self._process_single_event(raw, connection, profile_id))
            except InvalidTimeError as e:
                skipped += 1
                logger.warning(
                    f"Skipping event '{raw.summary}': {e}",
                    extra={'feed_connection_id': connection.id}
                )

        logger.info(
            f"Processed {len(processed)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed, skipped

    def _process_single_event(
        self,
        raw: RawEvent,
        connection: FeedConnection,
        profile_id: Optional[str]
    ) -> NormalizedEvent:
        start_utc, end_utc = self.resolver.resolve(raw.start, raw.end)

        classification = self.classifier.classify(raw.summary, raw.description)
        location = self.classifier.split_location(raw.location, raw.venue_title)

        external_id = raw.uid or self.generate_event_id(
            summary=raw.summary,
            start=start_utc.isoformat(),
            end=end_utc.isoformat()
        )

        return NormalizedEvent(
            external_id=external_id,
            title=classification.title[:self.MAX_TITLE_LENGTH],
            description=classification.description[:self.MAX_DESCRIPTION_LENGTH],
            start_time=start_utc,
            end_time=end_utc,
            location=location.address,
            location_name=location.venue_name,
            event_type=classification.event_type.value,
            opponent=classification.opponent,
            sport=connection.sport or 'Unknown',
            color=sport_color(connection.sport, connection.sport_color),
            platform=connection.provider,
            platform_color=provider_color(connection.provider),
            profile_id=profile_id,
            feed_connection_id=connection.id,
            is_cancelled=raw.status == 'CANCELLED',
            all_day=raw.start.is_date,
            last_updated=int(time.time())
        )

    def generate_event_id(self, summary: str, start: str, end: str) -> str:
        """
        Build a stable external id for events that have no UID.

        Args:
            summary: Original event summary
            start: Start instant (ISO 8601, UTC)
            end: End instant (ISO 8601, UTC)

        Returns:
            SHA256 hex digest prefixed with 'generated-'
        """
        composite = f"{summary}|{start}|{end}"
        return 'generated-' + hashlib.sha256(composite.encode('utf-8')).hexdigest()
