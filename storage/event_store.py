"""DynamoDB storage for normalized events."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import StoreError
from processor.models import NormalizedEvent

logger = logging.getLogger(__name__)

ISO_FORMAT = '%Y-%m-%dT%H:%M:%SZ'

OPTIONAL_FIELDS = ('location_name', 'opponent', 'profile_id')


def format_instant(value: datetime) -> str:
    """Serialize an aware datetime as an ISO 8601 UTC string."""
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def parse_instant(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


class EventStore:
    """Reads and writes NormalizedEvent items in the events table."""

    FEED_CONNECTION_INDEX = 'feed-connection-index'

    def __init__(self, table_name: str, dynamodb=None):
        """
        Initialize the DynamoDB table reference.

        Args:
            table_name: Name of the events table
            dynamodb: Optional boto3 DynamoDB resource
        """
        self.table_name = table_name
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)

    def get_events_for_connection(self, feed_connection_id: str) -> List[NormalizedEvent]:
        """
        Load every readable stored event owned by a feed connection.

        Args:
            feed_connection_id: Owning FeedConnection id

        Returns:
            List of stored events (with their stored ids)

        Raises:
            StoreError: If the query fails
        """
        events, _ = self.load_connection(feed_connection_id)
        return events

    def load_connection(
        self,
        feed_connection_id: str
    ) -> Tuple[List[NormalizedEvent], Dict[str, Optional[str]]]:
        """
        Load a feed connection's stored rows, keeping track of unreadable ones.

        Args:
            feed_connection_id: Owning FeedConnection id

        Returns:
            Tuple of (readable events, {stored id: sync_key or None} for rows
            that could not be converted)

        Raises:
            StoreError: If the query fails
        """
        query_args = {
            'IndexName': self.FEED_CONNECTION_INDEX,
            'KeyConditionExpression': Key('feed_connection_id').eq(feed_connection_id)
        }

        try:
            response = self.table.query(**query_args)
            items = response.get('Items', [])
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **query_args
                )
                items.extend(response.get('Items', []))
        except (BotoCoreError, ClientError) as e:
            raise StoreError(
                f"Failed to load events for feed connection {feed_connection_id}",
                details=str(e)
            ) from e

        events = []
        unreadable: Dict[str, Optional[str]] = {}
        for item in items:
            event = self._item_to_event(item)
            if event:
                events.append(event)
            elif item.get('id'):
                unreadable[item['id']] = item.get('sync_key')

        logger.info(
            f"Retrieved {len(events)} stored events for feed connection {feed_connection_id}"
            + (f" ({len(unreadable)} unreadable)" if unreadable else '')
        )
        return events, unreadable

    def put_events(self, events: List[NormalizedEvent]) -> int:
        """
        Insert or overwrite events keyed by their stored id.

        Raises:
            StoreError: If a write fails
        """
        if not events:
            return 0

        try:
            with self.table.batch_writer() as writer:
                for event in events:
                    writer.put_item(Item=self._event_to_item(event))
        except (BotoCoreError, ClientError) as e:
            raise StoreError('Failed to write events', details=str(e)) from e

        logger.info(f"Wrote {len(events)} events")
        return len(events)

    def delete_events(self, event_ids: List[str]) -> int:
        """
        Delete events by stored id.

        Raises:
            StoreError: If a delete fails
        """
        if not event_ids:
            return 0

        try:
            with self.table.batch_writer() as writer:
                for event_id in event_ids:
                    writer.delete_item(Key={'id': event_id})
        except (BotoCoreError, ClientError) as e:
            raise StoreError('Failed to delete events', details=str(e)) from e

        logger.info(f"Deleted {len(event_ids)} events")
        return len(event_ids)

    def delete_for_connection(self, feed_connection_id: str) -> int:
        """Delete every stored row owned by a feed connection."""
        events, unreadable = self.load_connection(feed_connection_id)
        return self.delete_events([event.id for event in events] + list(unreadable))

    def _event_to_item(self, event: NormalizedEvent) -> Dict[str, Any]:
        if not event.id:
            raise StoreError(f"Event {event.external_id} has no stored id")

        item = {
            'id': event.id,
            'sync_key': event.sync_key,
            'external_id': event.external_id,
            'title': event.title,
            'description': event.description,
            'start_time': format_instant(event.start_time),
            'end_time': format_instant(event.end_time),
            'location': event.location,
            'event_type': event.event_type,
            'sport': event.sport,
            'color': event.color,
            'platform': event.platform,
            'platform_color': event.platform_color,
            'feed_connection_id': event.feed_connection_id,
            'visibility': event.visibility,
            'is_cancelled': event.is_cancelled,
            'all_day': event.all_day,
            'last_updated': event.last_updated
        }

        for name in OPTIONAL_FIELDS:
            value = getattr(event, name)
            if value:
                item[name] = value

        return item

    def _item_to_event(self, item: Dict[str, Any]) -> Optional[NormalizedEvent]:
        try:
            return NormalizedEvent(
                id=item['id'],
                external_id=item['external_id'],
                title=item['title'],
                description=item.get('description', ''),
                start_time=parse_instant(item['start_time']),
                end_time=parse_instant(item['end_time']),
                location=item.get('location', ''),
                location_name=item.get('location_name'),
                event_type=item.get('event_type', 'Event'),
                opponent=item.get('opponent'),
                sport=item.get('sport', 'Unknown'),
                color=item.get('color', ''),
                platform=item['platform'],
                platform_color=item.get('platform_color', ''),
                profile_id=item.get('profile_id'),
                feed_connection_id=item['feed_connection_id'],
                visibility=item.get('visibility', 'public'),
                is_cancelled=bool(item.get('is_cancelled', False)),
                all_day=bool(item.get('all_day', False)),
                last_updated=int(item.get('last_updated', 0))
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to convert item to NormalizedEvent: {e}")
            return None
