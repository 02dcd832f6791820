"""Shared fixtures: mocked AWS tables and sample feeds."""
from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

from processor.models import FeedConnection, NormalizedEvent
from storage.event_store import EventStore
from storage.feed_connections import FeedConnectionStore
from storage.profiles import OwnerTimezoneLookup

CONNECTIONS_TABLE = 'test-feed-connections'
EVENTS_TABLE = 'test-events'
PROFILES_TABLE = 'test-profiles'
USER_SETTINGS_TABLE = 'test-user-settings'

SAMPLE_FEED = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Test//Team Feed//EN
X-WR-CALNAME:Lions U12 Schedule
BEGIN:VEVENT
UID:game-1@example.com
SUMMARY:Lions vs Tigers
DTSTART:20240301T180000Z
DTEND:20240301T193000Z
LOCATION:Community Gym, 500 Oak St
END:VEVENT
BEGIN:VEVENT
UID:practice-1@example.com
SUMMARY:Team Practice
DTSTART;TZID=America/Chicago:20240302T130000
DTEND;TZID=America/Chicago:20240302T143000
LOCATION:1325 North Theis Lane, Springfield
END:VEVENT
BEGIN:VEVENT
UID:tournament-1@example.com
SUMMARY:Spring Tournament
DTSTART:20240309T090000
DTEND:20240309T170000
LOCATION:Central Park
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def aws_env(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb(aws_env):
    """Create mock DynamoDB tables for testing."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name='us-east-1')

        for name, key in (
            (CONNECTIONS_TABLE, 'id'),
            (PROFILES_TABLE, 'id'),
            (USER_SETTINGS_TABLE, 'user_id'),
        ):
            resource.create_table(
                TableName=name,
                KeySchema=[{'AttributeName': key, 'KeyType': 'HASH'}],
                AttributeDefinitions=[{'AttributeName': key, 'AttributeType': 'S'}],
                BillingMode='PAY_PER_REQUEST'
            )

        resource.create_table(
            TableName=EVENTS_TABLE,
            KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': 'id', 'AttributeType': 'S'},
                {'AttributeName': 'feed_connection_id', 'AttributeType': 'S'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': EventStore.FEED_CONNECTION_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'feed_connection_id', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield resource


@pytest.fixture
def event_store(dynamodb):
    return EventStore(EVENTS_TABLE, dynamodb=dynamodb)


@pytest.fixture
def connection_store(dynamodb):
    return FeedConnectionStore(CONNECTIONS_TABLE, dynamodb=dynamodb, lock_seconds=60)


@pytest.fixture
def timezone_lookup(dynamodb):
    return OwnerTimezoneLookup(PROFILES_TABLE, USER_SETTINGS_TABLE, dynamodb=dynamodb)


@pytest.fixture
def sample_connection():
    return FeedConnection(
        id='team-1',
        provider='SportsEngine',
        external_team_id='12345',
        feed_url='webcal://feeds.example.com/team/12345.ics',
        profile_id='profile-1',
        team_name='Lions',
        sport='Basketball'
    )


@pytest.fixture
def stored_connection(connection_store, sample_connection):
    return connection_store.create(sample_connection)


@pytest.fixture
def owner_timezone(dynamodb):
    """Profile owned by a user whose preference is America/Los_Angeles."""
    dynamodb.Table(PROFILES_TABLE).put_item(Item={'id': 'profile-1', 'user_id': 'user-1'})
    dynamodb.Table(USER_SETTINGS_TABLE).put_item(
        Item={'user_id': 'user-1', 'timezone': 'America/Los_Angeles'}
    )
    return 'America/Los_Angeles'


def make_event(external_id, title='Game vs Tigers', hour=18, connection_id='team-1', **overrides):
    """Build a NormalizedEvent with sensible defaults."""
    values = dict(
        external_id=external_id,
        title=title,
        description=title,
        start_time=datetime(2024, 3, 1, hour, 0, tzinfo=timezone.utc),
        end_time=datetime(2024, 3, 1, hour + 1, 0, tzinfo=timezone.utc),
        location='Community Gym, 500 Oak St',
        location_name='Community Gym',
        event_type='Game',
        opponent='Tigers',
        sport='Basketball',
        color='#EF4444',
        platform='SportsEngine',
        platform_color='#2563EB',
        profile_id='profile-1',
        feed_connection_id=connection_id
    )
    values.update(overrides)
    return NormalizedEvent(**values)
