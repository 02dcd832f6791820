"""Diff-and-merge of a feed's new events against its stored events."""
import logging
import uuid
from dataclasses import fields
from typing import Dict, List

from processor.event_processor import deduplicate_events
from processor.models import NormalizedEvent, ReconcileResult
from storage.event_store import EventStore

logger = logging.getLogger(__name__)

# Bookkeeping fields that do not count as a content change
IGNORED_FIELDS = {'id', 'last_updated'}


class EventReconciler:
    """Keeps stored events in line with the upstream feed.

    Events matched by reconciliation key keep their stored id, so data
    attached to an event elsewhere (message threads, shares) stays valid.
    Stored events no longer present upstream are deleted.
    """

    def __init__(self, event_store: EventStore):
        self.event_store = event_store

    def reconcile(
        self,
        feed_connection_id: str,
        new_events: List[NormalizedEvent]
    ) -> ReconcileResult:
        """
        Merge a feed run's events into the store.

        Args:
            feed_connection_id: Owning FeedConnection id
            new_events: Normalized events from this run

        Returns:
            ReconcileResult with added/updated/deleted/unchanged counts

        Raises:
            StoreError: If reading or writing the store fails
        """
        batch = deduplicate_events(new_events)
        existing, unreadable = self.event_store.load_connection(feed_connection_id)

        stored_by_key: Dict[str, NormalizedEvent] = {}
        surplus_ids = []
        for stored in existing:
            if stored.sync_key in stored_by_key:
                surplus_ids.append(stored.id)
            else:
                stored_by_key[stored.sync_key] = stored

        batch_keys = {event.sync_key for event in batch}
        stale_ids = [
            stored.id for key, stored in stored_by_key.items()
            if key not in batch_keys
        ]

        # Unreadable rows are overwritten in place when their key is still
        # upstream and no readable row holds it; the rest are removed.
        repair_ids: Dict[str, str] = {}
        for row_id, key in unreadable.items():
            if key in batch_keys and key not in stored_by_key and key not in repair_ids:
                repair_ids[key] = row_id
            else:
                surplus_ids.append(row_id)

        to_insert = []
        to_update = []
        unchanged = 0
        for event in batch:
            stored = stored_by_key.get(event.sync_key)
            if stored is not None:
                event.id = stored.id
                if self.events_differ(event, stored):
                    to_update.append(event)
                else:
                    unchanged += 1
            elif event.sync_key in repair_ids:
                event.id = repair_ids[event.sync_key]
                to_update.append(event)
            else:
                event.id = str(uuid.uuid4())
                to_insert.append(event)

        logger.info(
            f"Reconcile plan: {len(to_insert)} to add, {len(to_update)} to update, "
            f"{len(stale_ids)} stale to delete, {len(surplus_ids)} duplicates to delete, "
            f"{unchanged} unchanged",
            extra={'feed_connection_id': feed_connection_id}
        )

        deleted = self.event_store.delete_events(stale_ids + surplus_ids)
        self.event_store.put_events(to_update + to_insert)

        return ReconcileResult(
            added=len(to_insert),
            updated=len(to_update),
            deleted=deleted,
            unchanged=unchanged,
            total=len(batch)
        )

    @staticmethod
    def events_differ(new: NormalizedEvent, stored: NormalizedEvent) -> bool:
        """Compare content fields, ignoring stored id and timestamps."""
        return any(
            getattr(new, f.name) != getattr(stored, f.name)
            for f in fields(NormalizedEvent)
            if f.name not in IGNORED_FIELDS
        )
