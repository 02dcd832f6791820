"""AWS Lambda handlers for team schedule feed sync."""
import json
import logging
import time
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError

from feed.fetcher import FeedFetcher
from feed.parser import FeedParser
from processor.errors import FetchError, SyncError
from storage.feed_connections import FeedConnectionStore
from sync.batch import BatchSyncRunner
from sync.pipeline import FeedSyncPipeline, SyncRequest
from sync.settings import Settings

RESERVED_LOG_ATTRS = set(
    logging.LogRecord('', 0, '', 0, '', (), None).__dict__
) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any `extra` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in RESERVED_LOG_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _read_payload(event: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Accept a direct invocation payload or an API Gateway proxy event."""
    if not event:
        return {}
    body = event.get('body') if isinstance(event, dict) else None
    if body is None:
        return event
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Sync one feed connection.

    Args:
        event: Payload with feedUrl, feedConnectionId and optional profileId
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    request = SyncRequest.from_payload(_read_payload(event))
    logger.info(
        'Feed sync started',
        extra={
            'feed_connection_id': request.feed_connection_id,
            'metadata_only': not request.profile_id
        }
    )

    try:
        pipeline = FeedSyncPipeline.from_settings(settings)
    except Exception as e:
        logger.error(f"Failed to initialize sync pipeline: {e}", exc_info=True)
        return _response(500, {
            'success': False,
            'error': 'Failed to initialize sync pipeline',
            'details': str(e),
            'error_type': type(e).__name__
        })

    deadline = time.monotonic() + settings.deadline_seconds
    result = pipeline.run(request, deadline=deadline)

    if result.success:
        logger.info(
            'Feed sync completed successfully',
            extra={
                'feed_connection_id': result.feed_connection_id,
                'duration_seconds': round(result.duration_seconds, 2),
                'events_added': result.added,
                'events_updated': result.updated,
                'events_deleted': result.deleted
            }
        )
        return _response(200, result.to_response())

    logger.error(
        f"Feed sync failed: {result.error}",
        extra={
            'feed_connection_id': result.feed_connection_id,
            'error_type': result.error_type
        }
    )
    return _response(result.status_code, result.to_response())


def sync_all_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Sync every active feed connection (scheduled trigger).

    Args:
        event: EventBridge event payload (unused)
        context: Lambda context object

    Returns:
        Response dict with per-feed results
    """
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    start_time = time.time()

    try:
        connections = FeedConnectionStore(settings.feed_connections_table).list_active()
    except (SyncError, BotoCoreError) as e:
        logger.error(f"Failed to load feed connections: {e}", exc_info=True)
        return _response(500, {
            'success': False,
            'error': 'Failed to sync calendars',
            'details': str(e)
        })

    if not connections:
        logger.info('No active feed connections found')
        return _response(200, {
            'success': True,
            'message': 'No active feed connections to sync',
            'total': 0
        })

    runner = BatchSyncRunner(
        pipeline_factory=lambda: FeedSyncPipeline.from_settings(settings),
        max_workers=settings.max_workers,
        deadline_seconds=settings.deadline_seconds
    )
    results = runner.run(connections)

    successful = sum(1 for r in results if r['success'])
    logger.info(
        f"Sync complete: {successful} successful, {len(results) - successful} failed",
        extra={'duration_seconds': round(time.time() - start_time, 2)}
    )
    return _response(200, {
        'success': True,
        'total': len(connections),
        'successful': successful,
        'failed': len(results) - successful,
        'results': results
    })


def validate_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Check that a URL serves a readable calendar feed. Writes nothing.

    Args:
        event: Payload with calendar_url
        context: Lambda context object

    Returns:
        Response dict; the body reports validity
    """
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    calendar_url = _read_payload(event).get('calendar_url')
    if not calendar_url or not isinstance(calendar_url, str):
        return _response(400, {
            'success': False,
            'error': 'calendar_url is required and must be a string'
        })

    fetcher = FeedFetcher(timeout=settings.timeout_seconds)
    try:
        feed = FeedParser().parse(fetcher.fetch(calendar_url), calendar_url)
    except FetchError as e:
        logger.warning(f"Calendar validation fetch failed: {e.message}")
        body = {'success': False, 'error': e.message}
        if e.status_code_http:
            body['status_code'] = e.status_code_http
        return _response(200, body)
    except SyncError as e:
        logger.warning(f"Calendar validation failed: {e.message}")
        return _response(e.status_code if e.status_code == 400 else 200, {
            'success': False,
            'error': e.message
        })

    count = feed.event_block_count
    return _response(200, {
        'success': True,
        'event_count': count,
        'calendar_name': feed.name,
        'calendar_description': feed.description,
        'message': f"Calendar is valid! Found {count} event{'' if count == 1 else 's'}."
    })
