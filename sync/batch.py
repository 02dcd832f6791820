"""Run many feed syncs concurrently, isolating failures per feed."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from processor.models import FeedConnection, SyncResult
from sync.pipeline import FeedSyncPipeline, SyncRequest

logger = logging.getLogger(__name__)


class BatchSyncRunner:
    """Syncs a list of feed connections, one independent task per feed.

    Each task builds its own pipeline through `pipeline_factory` because
    boto3 resources must not be shared between threads.
    """

    def __init__(
        self,
        pipeline_factory: Callable[[], FeedSyncPipeline],
        max_workers: int = 4,
        deadline_seconds: Optional[float] = None
    ):
        self.pipeline_factory = pipeline_factory
        self.max_workers = max(1, max_workers)
        self.deadline_seconds = deadline_seconds

    def run(self, connections: List[FeedConnection]) -> List[Dict]:
        """
        Sync every connection.

        Args:
            connections: Feed connections to sync

        Returns:
            One result dict per connection, in input order
        """
        if not connections:
            return []

        logger.info(f"Syncing {len(connections)} feed connections")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(self._sync_one, connections))

        succeeded = sum(1 for r in results if r['success'])
        logger.info(
            f"Batch sync complete: {succeeded} successful, "
            f"{len(results) - succeeded} failed"
        )
        return results

    def _sync_one(self, connection: FeedConnection) -> Dict:
        request = SyncRequest(
            feed_url=connection.feed_url,
            feed_connection_id=connection.id,
            profile_id=connection.profile_id
        )
        deadline = None
        if self.deadline_seconds:
            deadline = time.monotonic() + self.deadline_seconds

        try:
            result = self.pipeline_factory().run(request, deadline=deadline)
        except Exception as e:
            # The pipeline reports its own failures; this only covers setup
            logger.error(f"Error syncing {connection.id}: {e}", exc_info=True)
            result = SyncResult(
                success=False,
                feed_connection_id=connection.id,
                error=str(e),
                error_type=type(e).__name__,
                status_code=500
            )

        return {
            'id': connection.id,
            'name': connection.team_name,
            **result.to_response()
        }
