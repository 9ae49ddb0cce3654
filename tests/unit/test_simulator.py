"""
test_simulator.py – Unit tests for the synthetic telemetry simulator.

These tests run entirely offline. Every generated body is fed through the
real ingress parser, so the simulator cannot drift from the wire format.
"""

import itertools
import json
from datetime import datetime, timezone

import pytest
from confluent_kafka import KafkaError, KafkaException

from flockwatch.common.errors import MalformedMessage
from flockwatch.common.models import FlagPayload
from flockwatch.ingestor.parsing import parse_message
from flockwatch.simulator.producer import publish_batch
from flockwatch.simulator.simulator import (
    HouseProfile,
    build_message,
    house_id_pool,
    telemetry_stream,
)

PROFILE = HouseProfile(device_id="sim-house-001", flock_id="FLOCK-1234", bird_count=25000, bird_age_days=12)


class TestHouseIdPool:

    def test_pool_size_and_format(self):
        pool = house_id_pool(12)
        assert len(pool) == 12
        assert pool[0] == "sim-house-001"
        assert pool[-1] == "sim-house-012"

    def test_all_ids_are_unique(self):
        assert len(set(house_id_pool(50))) == 50


class TestBuildMessage:

    def test_message_parses_into_a_batch(self):
        batch = parse_message(build_message(PROFILE, datetime.now(timezone.utc)))
        assert len(batch.events) == 9
        assert {e.house_id for e in batch.events} == {"sim-house-001"}
        assert batch.house_state.bird_age_days == 12

    def test_fan_status_is_a_flag_reading(self):
        batch = parse_message(build_message(PROFILE, datetime.now(timezone.utc)))
        fans = [e for e in batch.events if e.event_type == "fan_status"]
        assert len(fans) == 1
        assert isinstance(fans[0].payload(), FlagPayload)

    def test_violation_injects_an_excursion(self):
        excursions = {36.5, 9.0, 91.0, 28.0, 38.0, 4600.0, 0.2}
        for _ in range(20):
            batch = parse_message(build_message(PROFILE, datetime.now(timezone.utc), violation=True))
            assert any(e.value in excursions for e in batch.events)


class TestTelemetryStream:

    def test_keys_come_from_the_house_pool(self):
        stream = telemetry_stream(house_count=3)
        keys = {key for key, _ in itertools.islice(stream, 100)}
        assert keys <= set(house_id_pool(3))

    def test_clean_stream_always_parses(self):
        stream = telemetry_stream(house_count=5, violation_ratio=0.5)
        for key, body in itertools.islice(stream, 100):
            batch = parse_message(body)
            assert batch.house_state.house_id == key

    def test_fully_malformed_stream_never_parses(self):
        stream = telemetry_stream(house_count=5, malformed_ratio=1.0)
        for _, body in itertools.islice(stream, 50):
            with pytest.raises(MalformedMessage):
                parse_message(body)

    def test_timestamps_are_timezone_aware(self):
        _, body = next(telemetry_stream(house_count=1))
        stamp = json.loads(body)["events"][0]["timestamp"]
        assert datetime.fromisoformat(stamp).tzinfo is not None

    @pytest.mark.parametrize("kwargs", [{"violation_ratio": 1.5}, {"malformed_ratio": -0.1}])
    def test_ratios_are_validated(self, kwargs):
        with pytest.raises(ValueError):
            next(telemetry_stream(house_count=1, **kwargs))


class TestPublishBatch:

    class RecordingProducer:
        def __init__(self, fail_every=0):
            self.fail_every = fail_every
            self.calls = 0
            self.produced = []
            self.polls = 0

        def produce(self, topic, key=None, value=None, on_delivery=None):
            self.calls += 1
            if self.fail_every and self.calls % self.fail_every == 0:
                raise KafkaException(KafkaError(KafkaError._QUEUE_FULL))
            self.produced.append((topic, key, value))

        def poll(self, timeout):
            self.polls += 1
            return 0

    def test_messages_are_keyed_by_house(self):
        producer = self.RecordingProducer()
        accepted = publish_batch(producer, "raw", telemetry_stream(house_count=2), 10)

        assert accepted == 10
        assert producer.polls == 1
        for topic, key, value in producer.produced:
            assert topic == "raw"
            assert parse_message(value).house_state.house_id == key.decode("utf-8")

    def test_queue_full_is_counted_and_skipped(self):
        producer = self.RecordingProducer(fail_every=2)
        accepted = publish_batch(producer, "raw", telemetry_stream(house_count=2), 6)
        assert accepted == 3
        assert len(producer.produced) == 3
