"""
persister.py – Durable append of validated sensor events.
"""

import logging
from typing import Sequence

from prometheus_client import Counter

from flockwatch.common.models import SensorEvent
from flockwatch.common.store import SensorStore

logger = logging.getLogger(__name__)

EVENTS_INSERTED = Counter(
    "flockwatch_events_inserted_total",
    "Total sensor events written to the store.",
)
EVENTS_DROPPED = Counter(
    "flockwatch_events_dropped_total",
    "Total sensor events not written because their house is unknown.",
)


class EventBatchPersister:
    """
    Append one message's events to the store as a single unit of work.

    Events whose ``house_id`` matches no house are dropped rather than failing
    the batch (late or orphaned device data is tolerated).  There is no
    de-duplication: a redelivered batch is inserted again.
    """

    def __init__(self, store: SensorStore) -> None:
        self._store = store

    def persist(self, events: Sequence[SensorEvent]) -> int:
        """
        Insert ``events`` and return how many rows were actually written.

        Raises
        ------
        StoreUnavailable
            If the store cannot be reached; nothing from the batch is written.
        """
        if not events:
            return 0

        inserted = self._store.insert_event_batch(events)
        dropped = len(events) - inserted

        EVENTS_INSERTED.inc(inserted)
        if dropped:
            EVENTS_DROPPED.inc(dropped)
            logger.info(
                "Dropped events for unknown houses",
                extra={"received": len(events), "inserted": inserted, "dropped": dropped},
            )
        return inserted
