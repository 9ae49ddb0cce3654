"""
kafka_utils.py – Kafka client factories and delivery helpers for flockwatch.

The ingestor reads the raw telemetry topic in bounded deliveries and settles
each delivery as a unit: either its offsets are committed, or every partition
it touched is rewound to the delivery's first offset.  The same module builds
the producers used for the quarantine topic and the telemetry simulator.

Client settings
---------------
=============================  =================================================
``enable.auto.commit=false``   offsets move only when the ingestor commits
``auto.offset.reset=earliest`` a fresh group starts at the oldest retained data
``max.poll.interval.ms``       5 min, enough for a delivery against a slow store
``acks=all`` + idempotence     quarantine envelopes are not lost or doubled
``linger.ms=20`` + lz4         gateways publish in small bursts
=============================  =================================================
"""

import json
import logging
from typing import Any, Iterable

from confluent_kafka import Consumer, KafkaError, Message, Producer, TopicPartition

logger = logging.getLogger(__name__)


# Delivery report callback
# =======================================================================

def make_delivery_callback(errors_counter=None, produced_counter=None):
    """
    Build a ``(err, msg) -> None`` callback for ``producer.produce(on_delivery=...)``.

    Parameters
    ----------
    errors_counter:
        Optional ``prometheus_client.Counter`` incremented on delivery failure.
    produced_counter:
        Optional ``prometheus_client.Counter`` incremented on delivery success.
    """

    def _on_delivery(err: KafkaError | None, msg: Message) -> None:
        if err is not None:
            logger.error(
                "Delivery failed",
                extra={"topic": msg.topic(), "partition": msg.partition(), "error": str(err)},
            )
            if errors_counter is not None:
                errors_counter.inc()
        elif produced_counter is not None:
            produced_counter.inc()

    return _on_delivery


# Client factories
# =======================================================================

def build_producer(bootstrap_servers: str) -> Producer:
    """Create an idempotent, LZ4-compressed ``Producer``."""
    logger.info("Building Kafka producer", extra={"bootstrap": bootstrap_servers})
    return Producer(
        {
            "bootstrap.servers": bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "linger.ms": 20,
            "compression.type": "lz4",
        }
    )


def build_consumer(bootstrap_servers: str, group_id: str) -> Consumer:
    """
    Create a manually-committing ``Consumer`` for group ``group_id``
    (e.g. ``cg.flockwatch-ingest.v1``).
    """
    logger.info(
        "Building Kafka consumer",
        extra={"bootstrap": bootstrap_servers, "group_id": group_id},
    )
    return Consumer(
        {
            "bootstrap.servers": bootstrap_servers,
            "group.id": group_id,
            "enable.auto.commit": False,
            "auto.offset.reset": "earliest",
            "max.poll.interval.ms": 300_000,
            "session.timeout.ms": 45_000,
            "heartbeat.interval.ms": 15_000,
        }
    )


# Delivery helpers
# =======================================================================

def publish_json(
    producer: Producer,
    topic: str,
    payload: dict[str, Any],
    key: str | None = None,
    on_delivery=None,
) -> None:
    """Serialise ``payload`` as UTF-8 JSON and hand it to ``producer``."""
    producer.produce(
        topic,
        key=key.encode("utf-8") if key is not None else None,
        value=json.dumps(payload).encode("utf-8"),
        on_delivery=on_delivery,
    )


def usable_messages(messages: Iterable[Message]) -> list[Message]:
    """
    Drop broker error events from a ``consume()`` result.

    Partition EOF is informational and dropped silently; every other error is
    logged.
    """
    usable = []
    for msg in messages:
        error = msg.error()
        if error is None:
            usable.append(msg)
        elif error.code() != KafkaError._PARTITION_EOF:
            logger.error("Consumer error: %s", error)
    return usable


def rewind(consumer: Consumer, delivery: Iterable[Message]) -> None:
    """Seek every partition in ``delivery`` back to its first offset."""
    first_offsets: dict[tuple[str, int], int] = {}
    for msg in delivery:
        first_offsets.setdefault((msg.topic(), msg.partition()), msg.offset())
    for (topic, partition), offset in first_offsets.items():
        consumer.seek(TopicPartition(topic, partition, offset))
