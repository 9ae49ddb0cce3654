"""
store.py – Durable store contract and the process-wide store accessor.

The pipeline depends only on the ``SensorStore`` protocol below.  In
production ``get_store()`` lazily builds one ``PostgresStore`` per process and
hands the same instance to every delivery; tests call ``use_store()`` with an
in-memory implementation instead.

Usage
-----
>>> from flockwatch.common.store import get_store
>>> store = get_store()
>>> store.insert_event_batch(events)
"""

import logging
import threading
from typing import Protocol, Sequence
from uuid import UUID

from flockwatch.common.models import Alert, House, SensorEvent, ThresholdPolicy

logger = logging.getLogger(__name__)


class SensorStore(Protocol):
    """Operations the ingestion core needs from the relational store."""

    def insert_event_batch(self, events: Sequence[SensorEvent]) -> int:
        """Insert events whose house exists; return the number of rows inserted."""
        ...

    def find_house_by_device_id(self, device_id: str) -> House | None:
        """Return the house whose ``device_id`` equals ``device_id``, if any."""
        ...

    def find_house_by_id(self, house_id: UUID) -> House | None:
        """Return the house with primary key ``house_id``, if any."""
        ...

    def find_threshold_policy(
        self, event_type: str, bird_age_days: int
    ) -> ThresholdPolicy | None:
        """Return the narrowest policy band for ``event_type`` containing ``bird_age_days``."""
        ...

    def update_house_live_state(
        self,
        house_key: str,
        bird_count: int | None,
        bird_age_days: int | None,
        flock_id: str | None,
    ) -> bool:
        """Overwrite a house's flock figures; return False if no house matched."""
        ...

    def insert_alert(self, alert: Alert) -> None:
        """Insert ``alert`` as a new active row."""
        ...


# Process-wide store singleton
# Built on first use; later callers (including concurrent deliveries) reuse it.
_store: SensorStore | None = None
_store_lock = threading.Lock()


def get_store() -> SensorStore:
    """
    Return the process-wide store, creating the PostgreSQL-backed one on first call.

    Raises
    ------
    StoreUnavailable
        If the connection pool cannot be established.
    """
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                from flockwatch.common.db import PostgresStore

                _store = PostgresStore()
                logger.info("Durable store initialised", extra={"store": type(_store).__name__})
    return _store


def use_store(store: SensorStore | None) -> None:
    """Install ``store`` as the process-wide store (``None`` resets to lazy init)."""
    global _store
    with _store_lock:
        _store = store


def close_store() -> None:
    """Release the process-wide store, if it holds closable resources."""
    global _store
    with _store_lock:
        store, _store = _store, None
    close = getattr(store, "close", None)
    if close is not None:
        close()
