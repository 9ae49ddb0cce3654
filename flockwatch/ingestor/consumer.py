"""
consumer.py – Kafka ingress adapter for the ingestion coordinator.

Responsibilities
----------------
1. Subscribe to the raw telemetry topic as consumer group
   ``settings.kafka_consumer_group``.
2. Pull up to ``kafka_max_delivery_size`` messages per ``consume()`` call;
   that batch is one *delivery* for the ``IngestionCoordinator``.
3. On success:
   a. publish every malformed message to the quarantine topic as an
      ``InvalidEvent`` envelope;
   b. commit the delivery's offsets synchronously.
4. On ``StoreUnavailable``: commit nothing and seek each partition back to the
   first offset of the delivery, so the same messages are consumed again.

Delivery semantics
------------------
At-least-once.  Offsets advance only after a delivery has been persisted and
evaluated; a crash or store outage before the commit causes redelivery, and a
redelivered message produces duplicate event and alert rows (nothing is
de-duplicated).

Observability
-------------
* Prometheus counters on ``http://0.0.0.0:{prometheus_port + 1}/metrics``.
* Structured logging at configurable level (default INFO).
* SIGINT / SIGTERM triggers a graceful shutdown: close consumer → close store.
"""

import logging
import signal
import sys

from confluent_kafka import Consumer, Message, Producer
from prometheus_client import Counter, start_http_server

from flockwatch.common.config import settings
from flockwatch.common.errors import StoreUnavailable
from flockwatch.common.kafka_utils import (
    build_consumer,
    build_producer,
    make_delivery_callback,
    publish_json,
    rewind,
    usable_messages,
)
from flockwatch.common.store import close_store
from flockwatch.ingestor.coordinator import IngestionCoordinator

# Logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

# Prometheus metrics
DELIVERIES_FAILED = Counter(
    "flockwatch_deliveries_failed_total",
    "Total deliveries rewound because the store was unavailable.",
)
QUARANTINE_ERRORS = Counter(
    "flockwatch_quarantine_errors_total",
    "Total quarantine envelopes the broker failed to accept.",
)

# Shutdown flag
_shutdown_requested: bool = False


def _handle_signal(signum: int, _frame) -> None:
    """Request graceful shutdown on SIGINT / SIGTERM."""
    global _shutdown_requested
    logger.info("Shutdown signal %d received, stopping consumer loop", signum)
    _shutdown_requested = True


def process_delivery(
    consumer: Consumer,
    producer: Producer,
    coordinator: IngestionCoordinator,
    messages: list[Message],
) -> bool:
    """
    Hand one ``consume()`` batch to the coordinator and settle its offsets.

    Returns
    -------
    bool
        ``True`` if offsets were committed, ``False`` if the delivery was
        empty or rewound for redelivery.
    """
    delivery = usable_messages(messages)
    if not delivery:
        return False

    try:
        report = coordinator.handle_delivery([msg.value() for msg in delivery])
    except StoreUnavailable:
        DELIVERIES_FAILED.inc()
        logger.exception(
            "Store unavailable, rewinding delivery for redelivery",
            extra={"messages": len(delivery)},
        )
        rewind(consumer, delivery)
        return False

    if report.malformed:
        on_quarantined = make_delivery_callback(errors_counter=QUARANTINE_ERRORS)
        for envelope in report.malformed:
            publish_json(
                producer,
                settings.kafka_topic_invalid,
                envelope.model_dump(),
                on_delivery=on_quarantined,
            )
        producer.poll(0)

    consumer.commit(asynchronous=False)
    return True


def main() -> None:
    """
    Run the ingestion consumer loop.

    Flow
    ----
    1. Register SIGINT / SIGTERM handlers.
    2. Start the Prometheus /metrics HTTP server.
    3. Build the Kafka consumer, the quarantine producer and the coordinator.
    4. Consume deliveries until shutdown is requested.
    5. On shutdown: flush quarantine envelopes, close consumer and store.
    """
    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    # Offset the port by 1 so the simulator producer can run on the same host
    metrics_port = settings.prometheus_port + 1
    start_http_server(metrics_port)
    logger.info("Prometheus /metrics available on port %d", metrics_port)

    consumer = build_consumer(settings.kafka_bootstrap_servers, settings.kafka_consumer_group)
    quarantine_producer = build_producer(settings.kafka_bootstrap_servers)
    consumer.subscribe([settings.kafka_topic_raw])

    # The store itself is acquired lazily on the first delivery.
    coordinator = IngestionCoordinator()

    logger.info(
        "Consumer started",
        extra={
            "topic": settings.kafka_topic_raw,
            "group": settings.kafka_consumer_group,
            "broker": settings.kafka_bootstrap_servers,
            "max_delivery_size": settings.kafka_max_delivery_size,
        },
    )

    try:
        while not _shutdown_requested:
            messages = consumer.consume(
                num_messages=settings.kafka_max_delivery_size,
                timeout=settings.kafka_poll_timeout_s,
            )
            if messages:
                process_delivery(consumer, quarantine_producer, coordinator, messages)
    finally:
        logger.info("Closing Kafka consumer and store")
        remaining = quarantine_producer.flush(5)
        if remaining > 0:
            logger.warning("%d quarantine envelope(s) were not flushed before exit", remaining)
        consumer.close()
        close_store()
        logger.info("Consumer shut down cleanly.")
        sys.exit(0)


if __name__ == "__main__":
    main()
