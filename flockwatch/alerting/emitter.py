"""
emitter.py – Alert sink.

Writes each alert as a new active row.  There is no search for an already-open
alert on the same (house, metric): a house that stays out of range raises one
alert per violating reading.
"""

import logging

from prometheus_client import Counter

from flockwatch.common.models import Alert
from flockwatch.common.store import SensorStore

logger = logging.getLogger(__name__)

# Labelled counter: one time series per (severity, metric) pair.
ALERTS_CREATED = Counter(
    "flockwatch_alerts_created_total",
    "Total threshold alerts persisted, labelled by severity and metric.",
    ["severity", "metric"],
)
ALERT_FAILURES = Counter(
    "flockwatch_alert_failures_total",
    "Total alerts that could not be persisted.",
)


class AlertEmitter:
    """Persist alerts through the store, never raising to the caller."""

    def __init__(self, store: SensorStore) -> None:
        self._store = store

    def emit(self, alert: Alert) -> bool:
        """
        Persist ``alert`` as a new active alert.

        Returns
        -------
        bool
            ``True`` if the row was written, ``False`` if the store call failed
            (the failure is logged with its traceback).
        """
        try:
            self._store.insert_alert(alert)
        except Exception:
            ALERT_FAILURES.inc()
            logger.exception(
                "Failed to persist alert",
                extra={
                    "house_id": str(alert.house_id),
                    "metric": alert.metric,
                    "severity": alert.severity,
                },
            )
            return False

        ALERTS_CREATED.labels(severity=alert.severity, metric=alert.metric).inc()
        logger.info(
            "Alert created: %s",
            alert.message,
            extra={
                "house_id": str(alert.house_id),
                "metric": alert.metric,
                "severity": alert.severity,
                "value": alert.value,
                "threshold": alert.threshold,
            },
        )
        return True
