"""Data models for feed ingestion and event reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncStatus(str, Enum):
    """Per-feed sync status shown to users."""
    PENDING = 'pending'
    SUCCESS = 'success'
    ERROR = 'error'


class TimeEncoding(str, Enum):
    """How a feed date-time was encoded."""
    UTC = 'utc'
    ZONED = 'zoned'
    FLOATING = 'floating'


class EventType(str, Enum):
    """Event category inferred from the summary."""
    GAME = 'Game'
    PRACTICE = 'Practice'
    TOURNAMENT = 'Tournament'
    SCRIMMAGE = 'Scrimmage'
    EVENT = 'Event'


@dataclass
class RawDateTime:
    """Date-time components as they appeared in the feed."""
    components: datetime
    encoding: TimeEncoding
    tzid: Optional[str] = None
    tz: Optional[tzinfo] = None
    is_date: bool = False


@dataclass
class RawEvent:
    """One VEVENT block pulled out of a feed."""
    uid: Optional[str]
    summary: str
    description: str
    location: str
    start: RawDateTime
    end: Optional[RawDateTime]
    venue_title: Optional[str] = None
    status: Optional[str] = None


@dataclass
class ParsedFeed:
    """Feed-level metadata plus the events that could be read."""
    name: str
    description: Optional[str]
    events: List[RawEvent]
    event_block_count: int


@dataclass
class Classification:
    """Result of running the summary through the classifier."""
    event_type: EventType
    title: str
    description: str
    opponent: Optional[str] = None
    matcher: Optional[str] = None


@dataclass
class LocationParts:
    """Raw location split into venue name and address."""
    address: str
    venue_name: Optional[str] = None


@dataclass
class FeedConnection:
    """A user's subscription to one provider calendar feed."""
    id: str
    provider: str
    external_team_id: str
    feed_url: str
    profile_id: Optional[str] = None
    team_name: Optional[str] = None
    sport: str = 'Unknown'
    sport_color: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    last_synced: Optional[str] = None
    is_active: bool = True


@dataclass
class NormalizedEvent:
    """Canonical event record owned by the reconciler."""
    external_id: str
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    location: str
    location_name: Optional[str]
    event_type: str
    opponent: Optional[str]
    sport: str
    color: str
    platform: str
    platform_color: str
    profile_id: Optional[str]
    feed_connection_id: str
    visibility: str = 'public'
    is_cancelled: bool = False
    all_day: bool = False
    id: Optional[str] = None
    last_updated: int = 0

    @property
    def sync_key(self) -> str:
        """Reconciliation key: (provider, feed connection, external id)."""
        return f"{self.platform}#{self.feed_connection_id}#{self.external_id}"


@dataclass
class ReconcileResult:
    """Counts produced by one reconciliation pass."""
    added: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    total: int = 0


@dataclass
class SyncResult:
    """Outcome of one feed sync run."""
    success: bool
    feed_connection_id: Optional[str] = None
    team_name: Optional[str] = None
    events_seen: int = 0
    events_after_dedup: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    metadata_only: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None
    details: Optional[str] = None
    status_code: int = 200
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        """Render the caller-facing response body."""
        if not self.success:
            body: Dict[str, Any] = {
                'success': False,
                'error': self.error,
                'error_type': self.error_type,
            }
            if self.details:
                body['details'] = self.details
            return body

        if self.metadata_only:
            message = 'Team calendar synced successfully'
            event_count = self.events_seen
        else:
            message = 'Calendar synced successfully'
            event_count = self.events_after_dedup

        return {
            'success': True,
            'message': message,
            'eventCount': event_count,
            'teamName': self.team_name,
            'statistics': {
                'events_seen': self.events_seen,
                'events_after_dedup': self.events_after_dedup,
                'events_added': self.added,
                'events_updated': self.updated,
                'events_deleted': self.deleted,
                'events_unchanged': self.unchanged,
                'events_skipped': self.skipped,
                'duration_seconds': round(self.duration_seconds, 2)
            }
        }
