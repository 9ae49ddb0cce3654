"""
threshold_resolver.py – Age-banded threshold policy lookup.
"""

import logging

from flockwatch.common.errors import PolicyNotFound
from flockwatch.common.models import ThresholdPolicy
from flockwatch.common.store import SensorStore

logger = logging.getLogger(__name__)


class ThresholdResolver:
    """
    Return the ``ThresholdPolicy`` covering an event type at a given bird age.

    Stateless: every call is a fresh lookup against the store's reference data,
    so policy edits take effect on the next reading.  Bands are assumed to be
    well-formed (non-overlapping, covering the valid age range).
    """

    def __init__(self, store: SensorStore) -> None:
        self._store = store

    def resolve(self, event_type: str, bird_age_days: int) -> ThresholdPolicy:
        """
        Raises
        ------
        PolicyNotFound
            If no band for ``event_type`` contains ``bird_age_days``.  The
            event type is simply not monitored at that age.
        """
        policy = self._store.find_threshold_policy(event_type, bird_age_days)
        if policy is None:
            raise PolicyNotFound(event_type, bird_age_days)
        return policy
