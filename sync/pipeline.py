"""Feed sync pipeline: fetch, parse, normalize, reconcile, report."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import boto3

from feed.fetcher import FeedFetcher
from feed.parser import FeedParser
from processor.errors import ParameterError, SyncError
from processor.event_processor import EventProcessor
from processor.models import SyncResult
from storage.event_store import EventStore
from storage.feed_connections import FeedConnectionStore
from storage.profiles import OwnerTimezoneLookup
from storage.reconciler import EventReconciler
from sync.settings import Settings
from sync.status import StatusReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncRequest:
    """One sync trigger. Immutable so the failure path can always read it."""
    feed_url: Optional[str]
    feed_connection_id: Optional[str]
    profile_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'SyncRequest':
        """Build a request from the trigger body (camelCase keys)."""
        payload = payload or {}
        return cls(
            feed_url=payload.get('feedUrl') or None,
            feed_connection_id=payload.get('feedConnectionId') or None,
            profile_id=payload.get('profileId') or None
        )

    def validate(self) -> None:
        missing = [
            name for name, value in (
                ('feedUrl', self.feed_url),
                ('feedConnectionId', self.feed_connection_id)
            ) if not value
        ]
        if missing:
            raise ParameterError(f"Missing required parameters: {', '.join(missing)}")

        not_strings = [
            name for name, value in (
                ('feedUrl', self.feed_url),
                ('feedConnectionId', self.feed_connection_id),
                ('profileId', self.profile_id)
            ) if value is not None and not isinstance(value, str)
        ]
        if not_strings:
            raise ParameterError(f"Parameters must be strings: {', '.join(not_strings)}")


class FeedSyncPipeline:
    """Runs one feed connection through every sync stage.

    `run` never raises; every outcome comes back as a SyncResult and every
    run that names a feed connection ends with a status write.
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: FeedParser,
        connections: FeedConnectionStore,
        event_store: EventStore,
        timezone_lookup: OwnerTimezoneLookup,
        reconciler: Optional[EventReconciler] = None,
        status: Optional[StatusReporter] = None
    ):
        self.fetcher = fetcher
        self.parser = parser
        self.connections = connections
        self.event_store = event_store
        self.timezone_lookup = timezone_lookup
        self.reconciler = reconciler or EventReconciler(event_store)
        self.status = status or StatusReporter(connections)

    @classmethod
    def from_settings(cls, settings: Settings, dynamodb=None) -> 'FeedSyncPipeline':
        """Wire up a pipeline against the configured DynamoDB tables."""
        dynamodb = dynamodb or boto3.resource('dynamodb')
        return cls(
            fetcher=FeedFetcher(timeout=settings.timeout_seconds),
            parser=FeedParser(),
            connections=FeedConnectionStore(
                settings.feed_connections_table,
                dynamodb=dynamodb,
                lock_seconds=settings.lock_seconds
            ),
            event_store=EventStore(settings.events_table, dynamodb=dynamodb),
            timezone_lookup=OwnerTimezoneLookup(
                settings.profiles_table,
                settings.user_settings_table,
                dynamodb=dynamodb
            )
        )

    def run(self, request: SyncRequest, deadline: Optional[float] = None) -> SyncResult:
        """
        Sync one feed.

        Args:
            request: Feed URL, feed connection id and optional profile id
            deadline: Optional absolute time.monotonic() deadline for the fetch

        Returns:
            SyncResult describing success or failure
        """
        start_time = time.time()
        try:
            request.validate()
            result = self._run_stages(request, deadline)
        except SyncError as e:
            result = self._fail(request, e)
        except Exception as e:
            logger.error(
                f"Unexpected error syncing feed connection {request.feed_connection_id}: {e}",
                exc_info=True
            )
            result = self._fail(request, e)

        result.duration_seconds = time.time() - start_time
        return result

    def _run_stages(self, request: SyncRequest, deadline: Optional[float]) -> SyncResult:
        connection_id = request.feed_connection_id
        connection = self.connections.get(connection_id)
        self.status.mark_pending(connection_id)

        feed_text = self.fetcher.fetch(request.feed_url, deadline=deadline)
        feed = self.parser.parse(feed_text, request.feed_url, connection.provider)
        logger.info(f"Extracted calendar name: {feed.name}")

        if not request.profile_id:
            logger.info('No profile ID provided, updating team info only')
            self.status.report_success(connection_id, feed.name)
            return SyncResult(
                success=True,
                feed_connection_id=connection_id,
                team_name=feed.name,
                events_seen=feed.event_block_count,
                events_after_dedup=feed.event_block_count,
                metadata_only=True
            )

        owner_timezone = self.timezone_lookup.get_timezone(request.profile_id)
        processor = EventProcessor(owner_timezone=owner_timezone)
        events, skipped = processor.process_events(feed.events, connection, request.profile_id)

        with self.connections.sync_lock(connection_id):
            outcome = self.reconciler.reconcile(connection_id, events)

        self.status.report_success(connection_id, feed.name)

        # Blocks the parser dropped (no usable DTSTART)
        unreadable = feed.event_block_count - len(feed.events)
        logger.info(
            f"Calendar synced: {outcome.added} added, {outcome.updated} updated, "
            f"{outcome.deleted} deleted, {outcome.unchanged} unchanged",
            extra={'feed_connection_id': connection_id}
        )
        return SyncResult(
            success=True,
            feed_connection_id=connection_id,
            team_name=feed.name,
            events_seen=feed.event_block_count,
            events_after_dedup=outcome.total,
            added=outcome.added,
            updated=outcome.updated,
            deleted=outcome.deleted,
            unchanged=outcome.unchanged,
            skipped=skipped + unreadable
        )

    def _fail(self, request: SyncRequest, error: Exception) -> SyncResult:
        if isinstance(error, SyncError):
            message = error.message
            details = error.details
            status_code = error.status_code
        else:
            message = str(error) or 'An unknown error occurred'
            details = None
            status_code = 500

        logger.error(
            f"Error syncing feed connection {request.feed_connection_id or 'N/A'}: {message}",
            extra={
                'feed_connection_id': request.feed_connection_id,
                'error_type': type(error).__name__
            }
        )

        if request.feed_connection_id:
            self.status.report_failure(request.feed_connection_id)

        return SyncResult(
            success=False,
            feed_connection_id=request.feed_connection_id,
            error=message,
            error_type=type(error).__name__,
            details=details,
            status_code=status_code
        )
