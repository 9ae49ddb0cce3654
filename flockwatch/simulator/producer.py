"""
producer.py – Publish synthetic house telemetry to the raw topic.

Each tick draws ``sim_messages_per_second`` gateway messages from the
simulator and publishes them keyed by house device id, so every message for a
house lands on the same partition.  A throughput summary is logged every
``STATS_INTERVAL_S`` seconds.  SIGINT / SIGTERM flush in-flight messages
(up to 5 s) before exiting.
"""

import logging
import signal
import sys
import time
from typing import Iterator

from confluent_kafka import KafkaException, Producer
from prometheus_client import Counter, start_http_server

from flockwatch.common.config import settings
from flockwatch.common.kafka_utils import build_producer, make_delivery_callback
from flockwatch.simulator.simulator import telemetry_stream

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

MESSAGES_PRODUCED = Counter(
    "flockwatch_sim_messages_produced_total",
    "Total simulated gateway messages acknowledged by the broker.",
)
PRODUCE_ERRORS = Counter(
    "flockwatch_sim_produce_errors_total",
    "Total simulated gateway messages that failed delivery.",
)

STATS_INTERVAL_S = 5.0

_shutdown_requested: bool = False


def _handle_signal(signum: int, _frame) -> None:
    global _shutdown_requested
    logger.info("Shutdown signal %d received, draining producer", signum)
    _shutdown_requested = True


def publish_batch(
    producer: Producer,
    topic: str,
    stream: Iterator[tuple[str, str]],
    count: int,
    on_delivery=None,
) -> int:
    """
    Publish ``count`` messages from ``stream`` and return how many the local
    producer queue accepted.
    """
    accepted = 0
    for _ in range(count):
        key, body = next(stream)
        try:
            producer.produce(
                topic,
                key=key.encode("utf-8"),
                value=body.encode("utf-8"),
                on_delivery=on_delivery,
            )
        except KafkaException as exc:
            # Local queue full or broker unreachable; the tick carries on.
            logger.error("produce() call raised KafkaException: %s", exc)
            PRODUCE_ERRORS.inc()
            continue
        accepted += 1
    producer.poll(0)
    return accepted


def main() -> None:
    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    start_http_server(settings.prometheus_port)
    logger.info("Prometheus /metrics available on port %d", settings.prometheus_port)

    producer = build_producer(settings.kafka_bootstrap_servers)
    on_delivery = make_delivery_callback(
        errors_counter=PRODUCE_ERRORS,
        produced_counter=MESSAGES_PRODUCED,
    )
    stream = telemetry_stream(
        house_count=settings.sim_house_count,
        violation_ratio=settings.sim_violation_ratio,
        malformed_ratio=settings.sim_malformed_ratio,
    )

    logger.info(
        "Telemetry simulator started",
        extra={
            "topic": settings.kafka_topic_raw,
            "houses": settings.sim_house_count,
            "target_mps": settings.sim_messages_per_second,
        },
    )

    sent = 0
    window_start = time.monotonic()
    while not _shutdown_requested:
        sent += publish_batch(
            producer,
            settings.kafka_topic_raw,
            stream,
            settings.sim_messages_per_second,
            on_delivery=on_delivery,
        )

        elapsed = time.monotonic() - window_start
        if elapsed >= STATS_INTERVAL_S:
            logger.info(
                "Simulator throughput: %d message(s) in %.1fs (%.1f/s)",
                sent, elapsed, sent / elapsed,
            )
            sent = 0
            window_start = time.monotonic()

        time.sleep(settings.sim_sleep_seconds)

    remaining = producer.flush(timeout=5)
    if remaining > 0:
        logger.warning("%d simulated message(s) were not flushed before exit", remaining)
    logger.info("Simulator shut down cleanly.")
    sys.exit(0)


if __name__ == "__main__":
    main()
