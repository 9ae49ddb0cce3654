"""
coordinator.py – Top-level handler for one ingress delivery.

A delivery is whatever the streaming ingress hands over in one call: one or
many independent messages.  For every message, in order:

1. Parse it into a ``SensorBatch``.  A ``MalformedMessage`` is logged,
   recorded in the report and skipped; the rest of the delivery carries on.
2. Persist the batch's events as one unit (``EventBatchPersister``).
3. Apply the batch's house live state, if it carries one.
4. Evaluate the same events against thresholds (``ThresholdEvaluator``).

Failure policy
--------------
``StoreUnavailable`` raised while acquiring the store, persisting events,
updating house state or looking up houses and policies during evaluation
propagates to the caller untouched.  There is no retry
here; the ingress layer decides whether and when to redeliver.

Messages are processed sequentially.  Independent deliveries may run
concurrently in other threads; they share only the process-wide store.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from prometheus_client import Counter

from flockwatch.alerting.emitter import AlertEmitter
from flockwatch.alerting.evaluator import ThresholdEvaluator
from flockwatch.alerting.house_resolver import HouseResolver
from flockwatch.alerting.threshold_resolver import ThresholdResolver
from flockwatch.common.errors import MalformedMessage
from flockwatch.common.models import Alert, EventKind, HouseLiveState, InvalidEvent
from flockwatch.common.store import SensorStore, get_store
from flockwatch.ingestor.parsing import parse_message
from flockwatch.ingestor.persister import EventBatchPersister

logger = logging.getLogger(__name__)

MESSAGES_RECEIVED = Counter(
    "flockwatch_messages_total",
    "Total ingress messages handed to the coordinator.",
)
MESSAGES_MALFORMED = Counter(
    "flockwatch_malformed_messages_total",
    "Total ingress messages skipped because they could not be parsed.",
)


@dataclass
class DeliveryReport:
    """Outcome of one delivery."""

    messages: int = 0
    parsed: int = 0
    inserted: int = 0
    alerts: list[Alert] = field(default_factory=list)
    malformed: list[InvalidEvent] = field(default_factory=list)


class IngestionCoordinator:
    """
    Drive parse → persist → evaluate for each message of a delivery.

    Parameters
    ----------
    store:
        Store to use.  ``None`` means the process-wide store from
        ``get_store()``, acquired on the first delivery.
    kinds:
        Event-type → payload-kind mapping forwarded to the evaluator.
    """

    def __init__(
        self,
        store: SensorStore | None = None,
        kinds: Mapping[str, EventKind] | None = None,
    ) -> None:
        self._store = store
        self._kinds = kinds
        # store, persister, evaluator; built once, on the first delivery
        self._wired: tuple[SensorStore, EventBatchPersister, ThresholdEvaluator] | None = None
        self._wire_lock = threading.Lock()

    def _wire(self) -> tuple[SensorStore, EventBatchPersister, ThresholdEvaluator]:
        wired = self._wired
        if wired is not None:
            return wired
        with self._wire_lock:
            if self._wired is None:
                store = self._store if self._store is not None else get_store()
                self._wired = (
                    store,
                    EventBatchPersister(store),
                    ThresholdEvaluator(
                        houses=HouseResolver(store),
                        thresholds=ThresholdResolver(store),
                        emitter=AlertEmitter(store),
                        kinds=self._kinds,
                    ),
                )
            return self._wired

    def handle_delivery(self, messages: Sequence[Any] | Any) -> DeliveryReport:
        """
        Process one delivery.

        Parameters
        ----------
        messages:
            List of messages.  Anything that is not a list or tuple is treated
            as a single-message delivery.

        Returns
        -------
        DeliveryReport
            Counts, the alerts emitted and the malformed messages skipped.

        Raises
        ------
        StoreUnavailable
            If the store cannot be reached.
        """
        batch = list(messages) if isinstance(messages, (list, tuple)) else [messages]
        report = DeliveryReport(messages=len(batch))
        MESSAGES_RECEIVED.inc(len(batch))
        logger.info("Received delivery of %d message(s)", len(batch), extra={"messages": len(batch)})

        store, persister, evaluator = self._wire()

        for index, message in enumerate(batch):
            try:
                sensor_batch = parse_message(message)
            except MalformedMessage as exc:
                MESSAGES_MALFORMED.inc()
                logger.warning(
                    "Skipping malformed message | index=%d | error=%s | payload=%s",
                    index,
                    exc.reason,
                    exc.raw[:200],
                    extra={"index": index, "error": exc.reason},
                )
                report.malformed.append(InvalidEvent(error=exc.reason, raw=exc.raw))
                continue

            report.parsed += 1
            events = sensor_batch.events

            inserted = persister.persist(events)
            report.inserted += inserted
            logger.info(
                "Persisted batch: %d of %d event(s) inserted",
                inserted,
                len(events),
                extra={"index": index, "received": len(events), "inserted": inserted},
            )

            if sensor_batch.house_state is not None:
                self._apply_house_state(store, sensor_batch.house_state)

            report.alerts.extend(evaluator.evaluate(events))

        logger.info(
            "Delivery complete: %d event(s) inserted",
            report.inserted,
            extra={
                "messages": report.messages,
                "parsed": report.parsed,
                "malformed": len(report.malformed),
                "inserted": report.inserted,
                "alerts": len(report.alerts),
            },
        )
        return report

    @staticmethod
    def _apply_house_state(store: SensorStore, state: HouseLiveState) -> None:
        updated = store.update_house_live_state(
            state.house_id, state.bird_count, state.bird_age_days, state.flock_id
        )
        if not updated:
            logger.info("Live state for unknown house ignored", extra={"house_key": state.house_id})
