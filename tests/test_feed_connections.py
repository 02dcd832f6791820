"""Unit tests for FeedConnectionStore and OwnerTimezoneLookup."""
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from processor.errors import StoreError
from processor.models import FeedConnection, SyncStatus
from storage.feed_connections import FeedConnectionStore
from storage.profiles import OwnerTimezoneLookup

from conftest import CONNECTIONS_TABLE, PROFILES_TABLE, USER_SETTINGS_TABLE, make_event


class TestFeedConnectionStore:
    """Test cases for FeedConnectionStore class."""

    def test_create_and_get(self, connection_store, stored_connection):
        loaded = connection_store.get('team-1')

        assert loaded.provider == 'SportsEngine'
        assert loaded.external_team_id == '12345'
        assert loaded.profile_id == 'profile-1'
        assert loaded.sport == 'Basketball'
        assert loaded.sync_status == SyncStatus.PENDING
        assert loaded.last_synced is None
        assert loaded.is_active is True

    def test_duplicate_provider_team_rejected(self, connection_store, stored_connection):
        duplicate = FeedConnection(
            id='team-other',
            provider='SportsEngine',
            external_team_id='12345',
            feed_url='https://feeds.example.com/team/12345.ics'
        )

        with pytest.raises(StoreError) as exc_info:
            connection_store.create(duplicate)

        assert 'already exists' in exc_info.value.message
        with pytest.raises(StoreError):
            connection_store.get('team-other')

    def test_same_team_on_other_provider_allowed(self, connection_store, stored_connection):
        other = FeedConnection(
            id='team-2',
            provider='Playmetrics',
            external_team_id='12345',
            feed_url='https://playmetrics.example.com/12345.ics'
        )

        connection_store.create(other)

        assert connection_store.get('team-2').provider == 'Playmetrics'

    def test_get_missing_raises(self, connection_store):
        with pytest.raises(StoreError) as exc_info:
            connection_store.get('nope')

        assert 'not found' in exc_info.value.message

    def test_get_constraint_record_is_not_a_connection(self, connection_store, stored_connection):
        with pytest.raises(StoreError):
            connection_store.get(FeedConnectionStore.constraint_id('SportsEngine', '12345'))

    def test_list_active(self, connection_store, stored_connection):
        connection_store.create(FeedConnection(
            id='team-2',
            provider='TeamSnap',
            external_team_id='999',
            feed_url='https://teamsnap.example.com/999.ics',
            is_active=False
        ))

        active = connection_store.list_active()

        assert [c.id for c in active] == ['team-1']

    def test_update_sync_status(self, connection_store, stored_connection):
        connection_store.update_sync_status('team-1', SyncStatus.SUCCESS, team_name='Lions U12')

        loaded = connection_store.get('team-1')
        assert loaded.sync_status == SyncStatus.SUCCESS
        assert loaded.team_name == 'Lions U12'
        assert loaded.last_synced is not None

    def test_pending_status_leaves_last_synced(self, connection_store, stored_connection):
        connection_store.update_sync_status('team-1', SyncStatus.PENDING, touch_last_synced=False)

        loaded = connection_store.get('team-1')
        assert loaded.sync_status == SyncStatus.PENDING
        assert loaded.last_synced is None

    def test_update_status_for_missing_connection(self, connection_store):
        with pytest.raises(StoreError):
            connection_store.update_sync_status('ghost', SyncStatus.ERROR)

    def test_delete_cascades_to_events(self, connection_store, stored_connection, event_store):
        event = make_event('game-1')
        event.id = 'event-1'
        event_store.put_events([event])

        connection_store.delete(stored_connection, event_store=event_store)

        assert event_store.get_events_for_connection('team-1') == []
        with pytest.raises(StoreError):
            connection_store.get('team-1')
        # Pair is free again
        connection_store.create(stored_connection)


class TestSyncLock:
    """Test cases for the per-connection sync lock."""

    def test_lock_acquired_and_released(self, connection_store, stored_connection, dynamodb):
        table = dynamodb.Table(CONNECTIONS_TABLE)

        with connection_store.sync_lock('team-1') as owner:
            item = table.get_item(Key={'id': 'team-1'})['Item']
            assert item['sync_lock_owner'] == owner

        item = table.get_item(Key={'id': 'team-1'})['Item']
        assert 'sync_lock_owner' not in item
        assert 'sync_lock_until' not in item

    def test_second_holder_rejected(self, connection_store, stored_connection):
        with connection_store.sync_lock('team-1'):
            with pytest.raises(StoreError) as exc_info:
                with connection_store.sync_lock('team-1'):
                    pass

        assert 'already in progress' in exc_info.value.message

    def test_lock_released_on_error(self, connection_store, stored_connection):
        with pytest.raises(RuntimeError):
            with connection_store.sync_lock('team-1'):
                raise RuntimeError('boom')

        with connection_store.sync_lock('team-1'):
            pass

    def test_expired_lease_can_be_taken(self, connection_store, stored_connection, dynamodb):
        dynamodb.Table(CONNECTIONS_TABLE).update_item(
            Key={'id': 'team-1'},
            UpdateExpression='SET sync_lock_owner = :owner, sync_lock_until = :until',
            ExpressionAttributeValues={':owner': 'crashed-run', ':until': int(time.time()) - 10}
        )

        with connection_store.sync_lock('team-1') as owner:
            assert owner != 'crashed-run'

    def test_lock_on_missing_connection(self, connection_store):
        with pytest.raises(StoreError):
            with connection_store.sync_lock('ghost'):
                pass


class TestOwnerTimezoneLookup:
    """Test cases for OwnerTimezoneLookup class."""

    def test_returns_user_preference(self, timezone_lookup, owner_timezone):
        assert timezone_lookup.get_timezone('profile-1') == 'America/Los_Angeles'

    def test_missing_profile_defaults_to_utc(self, timezone_lookup):
        assert timezone_lookup.get_timezone('unknown-profile') == 'UTC'

    def test_no_profile_id_defaults_to_utc(self, timezone_lookup):
        assert timezone_lookup.get_timezone(None) == 'UTC'

    def test_missing_settings_defaults_to_utc(self, timezone_lookup, dynamodb):
        dynamodb.Table(PROFILES_TABLE).put_item(Item={'id': 'profile-2', 'user_id': 'user-2'})

        assert timezone_lookup.get_timezone('profile-2') == 'UTC'

    def test_invalid_zone_defaults_to_utc(self, timezone_lookup, dynamodb):
        dynamodb.Table(PROFILES_TABLE).put_item(Item={'id': 'profile-3', 'user_id': 'user-3'})
        dynamodb.Table(USER_SETTINGS_TABLE).put_item(
            Item={'user_id': 'user-3', 'timezone': 'Moon/Tranquility'}
        )

        assert timezone_lookup.get_timezone('profile-3') == 'UTC'

    def test_non_string_zone_defaults_to_utc(self, timezone_lookup, dynamodb):
        dynamodb.Table(PROFILES_TABLE).put_item(Item={'id': 'profile-4', 'user_id': 'user-4'})
        dynamodb.Table(USER_SETTINGS_TABLE).put_item(
            Item={'user_id': 'user-4', 'timezone': Decimal(5)}
        )

        assert timezone_lookup.get_timezone('profile-4') == 'UTC'

    def test_connection_outage_defaults_to_utc(self):
        table = MagicMock()
        table.get_item.side_effect = EndpointConnectionError(endpoint_url='https://dynamodb')
        resource = MagicMock()
        resource.Table.return_value = table

        lookup = OwnerTimezoneLookup('profiles', 'settings', dynamodb=resource)

        assert lookup.get_timezone('profile-1') == 'UTC'

    def test_read_error_defaults_to_utc(self):
        table = MagicMock()
        table.get_item.side_effect = ClientError(
            {'Error': {'Code': 'ProvisionedThroughputExceededException', 'Message': 'slow down'}},
            'GetItem'
        )
        resource = MagicMock()
        resource.Table.return_value = table

        lookup = OwnerTimezoneLookup('profiles', 'settings', dynamodb=resource)

        assert lookup.get_timezone('profile-1') == 'UTC'


class TestStoreTransportErrors:
    """Test cases for botocore transport errors in FeedConnectionStore."""

    def test_get_outage_raises_store_error(self):
        table = MagicMock()
        table.get_item.side_effect = EndpointConnectionError(endpoint_url='https://dynamodb')
        resource = MagicMock()
        resource.Table.return_value = table

        with pytest.raises(StoreError):
            FeedConnectionStore('feed-connections', dynamodb=resource).get('team-1')

    def test_status_outage_raises_store_error(self):
        table = MagicMock()
        table.update_item.side_effect = EndpointConnectionError(endpoint_url='https://dynamodb')
        resource = MagicMock()
        resource.Table.return_value = table

        with pytest.raises(StoreError):
            FeedConnectionStore('feed-connections', dynamodb=resource).update_sync_status(
                'team-1', SyncStatus.ERROR
            )
