"""Per-feed sync status reporting."""
import logging

from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import StoreError
from processor.models import SyncStatus
from storage.feed_connections import FeedConnectionStore

logger = logging.getLogger(__name__)


class StatusReporter:
    """Writes pending/success/error status onto a feed connection."""

    def __init__(self, connections: FeedConnectionStore):
        self.connections = connections

    def mark_pending(self, connection_id: str) -> None:
        self.connections.update_sync_status(
            connection_id, SyncStatus.PENDING, touch_last_synced=False
        )

    def report_success(self, connection_id: str, team_name: str) -> None:
        """
        Record a successful run.

        Raises:
            StoreError: If the status write fails
        """
        self.connections.update_sync_status(
            connection_id, SyncStatus.SUCCESS, team_name=team_name
        )
        logger.info(f"Updated feed connection {connection_id}: success, name {team_name!r}")

    def report_failure(self, connection_id: str) -> bool:
        """
        Record a failed run. Best effort: write failures are logged only.

        Returns:
            True if the error status was written
        """
        try:
            self.connections.update_sync_status(connection_id, SyncStatus.ERROR)
        except (StoreError, BotoCoreError, ClientError) as e:
            logger.error(
                f"Error updating sync status to error for {connection_id}: {e}",
                extra={'feed_connection_id': connection_id}
            )
            return False
        return True
