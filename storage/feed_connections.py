"""DynamoDB storage for feed connections, sync status and the sync lock."""
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import StoreError
from processor.models import FeedConnection, SyncStatus

logger = logging.getLogger(__name__)

CONNECTION_RECORD = 'connection'
CONSTRAINT_RECORD = 'constraint'


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def _is_conditional_failure(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


class FeedConnectionStore:
    """Manager for the feed connections table.

    The table holds connection records plus one constraint record per
    (provider, external team id) pair, which keeps that pair unique.
    """

    def __init__(self, table_name: str, dynamodb=None, lock_seconds: int = 300):
        """
        Initialize DynamoDB table reference.

        Args:
            table_name: Name of the feed connections table
            dynamodb: Optional boto3 DynamoDB resource
            lock_seconds: Lease length of the per-connection sync lock
        """
        self.table_name = table_name
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.lock_seconds = lock_seconds

    @staticmethod
    def constraint_id(provider: str, external_team_id: str) -> str:
        return f"unique#{provider}#{external_team_id}"

    def create(self, connection: FeedConnection) -> FeedConnection:
        """
        Register a new feed connection.

        Raises:
            StoreError: If the (provider, external team id) pair is taken
        """
        constraint_id = self.constraint_id(connection.provider, connection.external_team_id)
        try:
            self.table.put_item(
                Item={
                    'id': constraint_id,
                    'record_type': CONSTRAINT_RECORD,
                    'connection_id': connection.id
                },
                ConditionExpression='attribute_not_exists(id)'
            )
        except (BotoCoreError, ClientError) as e:
            if _is_conditional_failure(e):
                raise StoreError(
                    f"Feed connection already exists for {connection.provider} "
                    f"team {connection.external_team_id}"
                ) from e
            raise StoreError('Failed to register feed connection', details=str(e)) from e

        try:
            self.table.put_item(
                Item=self._connection_to_item(connection),
                ConditionExpression='attribute_not_exists(id)'
            )
        except (BotoCoreError, ClientError) as e:
            self._delete_item(constraint_id)
            raise StoreError('Failed to create feed connection', details=str(e)) from e

        logger.info(f"Created feed connection {connection.id} ({connection.provider})")
        return connection

    def get(self, connection_id: str) -> FeedConnection:
        """
        Load a feed connection.

        Raises:
            StoreError: If it does not exist or the read fails
        """
        try:
            response = self.table.get_item(Key={'id': connection_id})
        except (BotoCoreError, ClientError) as e:
            raise StoreError(
                f"Failed to load feed connection {connection_id}", details=str(e)
            ) from e

        item = response.get('Item')
        if not item or item.get('record_type') != CONNECTION_RECORD:
            raise StoreError(f"Feed connection not found: {connection_id}")
        return self._item_to_connection(item)

    def list_active(self) -> List[FeedConnection]:
        """Return every active feed connection."""
        scan_args = {
            'FilterExpression': (
                Attr('record_type').eq(CONNECTION_RECORD) & Attr('is_active').eq(True)
            )
        }
        try:
            response = self.table.scan(**scan_args)
            items = response.get('Items', [])
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_args
                )
                items.extend(response.get('Items', []))
        except (BotoCoreError, ClientError) as e:
            raise StoreError('Failed to list feed connections', details=str(e)) from e

        return [self._item_to_connection(item) for item in items]

    def delete(self, connection: FeedConnection, event_store=None) -> None:
        """
        Remove a connection and its uniqueness record.

        Args:
            connection: Connection to remove
            event_store: If given, the connection's events are deleted first
        """
        if event_store is not None:
            removed = event_store.delete_for_connection(connection.id)
            logger.info(f"Deleted {removed} events for feed connection {connection.id}")
        self._delete_item(connection.id)
        self._delete_item(self.constraint_id(connection.provider, connection.external_team_id))
        logger.info(f"Deleted feed connection {connection.id}")

    def update_sync_status(
        self,
        connection_id: str,
        status: SyncStatus,
        team_name: Optional[str] = None,
        touch_last_synced: bool = True
    ) -> None:
        """
        Write sync status, and optionally the last-synced time and team name.

        Raises:
            StoreError: If the connection is missing or the write fails
        """
        expressions = ['sync_status = :status']
        values: Dict[str, Any] = {':status': status.value}
        if touch_last_synced:
            expressions.append('last_synced = :last_synced')
            values[':last_synced'] = utc_now_iso()
        if team_name:
            expressions.append('team_name = :team_name')
            values[':team_name'] = team_name

        try:
            self.table.update_item(
                Key={'id': connection_id},
                UpdateExpression='SET ' + ', '.join(expressions),
                ConditionExpression='attribute_exists(id)',
                ExpressionAttributeValues=values
            )
        except (BotoCoreError, ClientError) as e:
            if _is_conditional_failure(e):
                raise StoreError(f"Feed connection not found: {connection_id}") from e
            raise StoreError(
                f"Failed to update sync status for {connection_id}", details=str(e)
            ) from e

    @contextmanager
    def sync_lock(self, connection_id: str) -> Iterator[str]:
        """
        Hold the per-connection advisory lock for the duration of a block.

        The lock is a lease: a crashed holder releases it when
        `lock_seconds` have passed.

        Raises:
            StoreError: If another run holds the lock
        """
        owner = str(uuid.uuid4())
        now = int(time.time())
        try:
            self.table.update_item(
                Key={'id': connection_id},
                UpdateExpression='SET sync_lock_owner = :owner, sync_lock_until = :until',
                ConditionExpression=(
                    'attribute_exists(id) AND '
                    '(attribute_not_exists(sync_lock_until) OR sync_lock_until < :now)'
                ),
                ExpressionAttributeValues={
                    ':owner': owner,
                    ':until': now + self.lock_seconds,
                    ':now': now
                }
            )
        except (BotoCoreError, ClientError) as e:
            if _is_conditional_failure(e):
                raise StoreError(
                    f"Sync already in progress for feed connection {connection_id}"
                ) from e
            raise StoreError('Failed to acquire sync lock', details=str(e)) from e

        logger.debug(f"Acquired sync lock for {connection_id}")
        try:
            yield owner
        finally:
            self._release_lock(connection_id, owner)

    def _release_lock(self, connection_id: str, owner: str) -> None:
        try:
            self.table.update_item(
                Key={'id': connection_id},
                UpdateExpression='REMOVE sync_lock_owner, sync_lock_until',
                ConditionExpression='sync_lock_owner = :owner',
                ExpressionAttributeValues={':owner': owner}
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Failed to release sync lock for {connection_id}: {e}")

    def _delete_item(self, item_id: str) -> None:
        try:
            self.table.delete_item(Key={'id': item_id})
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"Failed to delete {item_id}", details=str(e)) from e

    def _connection_to_item(self, connection: FeedConnection) -> Dict[str, Any]:
        item = {
            'id': connection.id,
            'record_type': CONNECTION_RECORD,
            'provider': connection.provider,
            'external_team_id': connection.external_team_id,
            'feed_url': connection.feed_url,
            'sport': connection.sport,
            'sync_status': connection.sync_status.value,
            'is_active': connection.is_active
        }
        for name in ('profile_id', 'team_name', 'sport_color', 'last_synced'):
            value = getattr(connection, name)
            if value:
                item[name] = value
        return item

    @staticmethod
    def _item_to_connection(item: Dict[str, Any]) -> FeedConnection:
        try:
            status = SyncStatus(item.get('sync_status', SyncStatus.PENDING.value))
        except ValueError:
            status = SyncStatus.PENDING

        return FeedConnection(
            id=item['id'],
            provider=item['provider'],
            external_team_id=item['external_team_id'],
            feed_url=item['feed_url'],
            profile_id=item.get('profile_id'),
            team_name=item.get('team_name'),
            sport=item.get('sport', 'Unknown'),
            sport_color=item.get('sport_color'),
            sync_status=status,
            last_synced=item.get('last_synced'),
            is_active=bool(item.get('is_active', True))
        )
