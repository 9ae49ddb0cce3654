"""
evaluator.py – Threshold evaluation for a batch of persisted sensor events.

Processing pipeline per message
-------------------------------
1. Group the events by ``house_id``, keeping the order in which houses first
   appear.
2. For each house group, resolve the house once.  Unknown houses are skipped
   as a whole.
3. For each event in the group:
   a. Skip it unless its payload (selected by the event-type kind mapping) is
      numeric.  Flag and text readings are not threshold-evaluated.
   b. Resolve the policy for (event type, house bird age); skip if none.
   c. Classify the value with ``threshold_rules.classify``.
   d. On a violation, build an ``Alert`` and hand it to the emitter.

Failure isolation
-----------------
Every house group and every event runs inside its own ``try`` block.  A lookup
that raises is logged and only costs that house or that event; the rest of
the batch is still evaluated.  ``StoreUnavailable`` is the exception: it
propagates so the delivery is redelivered.  Alert insert failures stay
inside ``AlertEmitter.emit``.
"""

import logging
from typing import Iterable, Mapping

from flockwatch.alerting.emitter import AlertEmitter
from flockwatch.alerting.house_resolver import HouseResolver
from flockwatch.alerting.threshold_resolver import ThresholdResolver
from flockwatch.alerting.threshold_rules import classify, describe
from flockwatch.common.errors import HouseNotFound, PolicyNotFound, StoreUnavailable
from flockwatch.common.models import Alert, EventKind, House, NumericPayload, SensorEvent

logger = logging.getLogger(__name__)


def group_by_house(events: Iterable[SensorEvent]) -> dict[str, list[SensorEvent]]:
    """Group events by ``house_id``; dict order is first-seen house order."""
    groups: dict[str, list[SensorEvent]] = {}
    for event in events:
        groups.setdefault(event.house_id, []).append(event)
    return groups


class ThresholdEvaluator:
    """
    Evaluate sensor events against age-banded threshold policies.

    Parameters
    ----------
    houses:
        Resolver mapping device-facing identifiers to houses.
    thresholds:
        Resolver returning the policy for an event type at a bird age.
    emitter:
        Sink for the alerts raised.
    kinds:
        Event-type → payload-kind mapping.  ``None`` uses ``DEFAULT_EVENT_KINDS``.
    """

    def __init__(
        self,
        houses: HouseResolver,
        thresholds: ThresholdResolver,
        emitter: AlertEmitter,
        kinds: Mapping[str, EventKind] | None = None,
    ) -> None:
        self._houses = houses
        self._thresholds = thresholds
        self._emitter = emitter
        self._kinds = kinds

    def evaluate(self, events: Iterable[SensorEvent]) -> list[Alert]:
        """
        Evaluate all events of one message.

        Returns
        -------
        list[Alert]
            The alerts that were raised and successfully emitted, in order.

        Raises
        ------
        StoreUnavailable
            If a house or policy lookup cannot reach the store.
        """
        emitted: list[Alert] = []
        for house_key, group in group_by_house(events).items():
            try:
                house = self._houses.resolve(house_key)
            except HouseNotFound:
                logger.info(
                    "Skipping events for unknown house",
                    extra={"house_key": house_key, "events": len(group)},
                )
                continue
            except StoreUnavailable:
                raise
            except Exception:
                logger.exception(
                    "House resolution failed, skipping its events",
                    extra={"house_key": house_key, "events": len(group)},
                )
                continue

            for event in group:
                try:
                    alert = self.check_event(house, event)
                except StoreUnavailable:
                    raise
                except Exception:
                    logger.exception(
                        "Threshold evaluation failed for event",
                        extra={
                            "house_id": str(house.id),
                            "event_type": event.event_type,
                            "timestamp": event.timestamp.isoformat(),
                        },
                    )
                    continue

                if alert is not None and self._emitter.emit(alert):
                    emitted.append(alert)

        return emitted

    def check_event(self, house: House, event: SensorEvent) -> Alert | None:
        """
        Evaluate a single event for an already-resolved house.

        Returns ``None`` when the event is non-numeric, unmonitored at the
        house's bird age, or within range.
        """
        payload = event.payload(self._kinds)
        if not isinstance(payload, NumericPayload):
            return None

        # HouseResolver always fills in a bird age.
        age = house.bird_age_days
        try:
            policy = self._thresholds.resolve(event.event_type, age)
        except PolicyNotFound:
            logger.debug(
                "No threshold policy, event not monitored",
                extra={"event_type": event.event_type, "bird_age_days": age},
            )
            return None

        violation = classify(payload.value, policy)
        if violation is None:
            return None

        return Alert(
            house_id=house.id,
            type="threshold",
            severity=violation.severity,
            metric=event.event_type,
            value=payload.value,
            threshold=violation.bound,
            message=describe(payload.value, violation, policy),
            is_active=True,
            event_time=event.timestamp,
        )
