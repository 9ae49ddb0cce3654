"""
test_parsing.py – Unit tests for the ingress boundary parser.
"""

import json

import pytest

from flockwatch.common.errors import MalformedMessage
from flockwatch.common.models import SensorBatch
from flockwatch.ingestor.parsing import parse_message

from conftest import event_dict


LEGACY_MESSAGE = {
    "deviceId": "farm7-house03",
    "farmId": "farm7",
    "houseNumber": 3,
    "timestamp": "2026-10-01T06:00:00Z",
    "birdAgeInDays": 18,
    "currentBirds": 23800,
    "capacity": 25000,
    "flockId": "F-2026-07",
    "sensors": {
        "temperature": 27.4,
        "humidity": 61.0,
        "ammonia": 8.2,
        "co2": 1900,
        "feedLevel": 72.5,
        "waterFlow": 4.9,
        "ventilation": 55,
        "lighting": 20.0,
    },
    "alerts": [{"type": "threshold", "severity": "warning", "metric": "temperature"}],
}


class TestAcceptedShapes:

    def test_json_string(self):
        body = json.dumps({"events": [event_dict(value=21.5)]})
        batch = parse_message(body)
        assert len(batch.events) == 1
        assert batch.events[0].value == 21.5
        assert batch.house_state is None

    def test_utf8_bytes(self):
        body = json.dumps({"events": [event_dict(value=21.5)]}).encode("utf-8")
        assert parse_message(body).events[0].house_id == "h1"

    def test_pre_parsed_mapping(self):
        batch = parse_message({"events": [event_dict(value=1), event_dict("h2", value=2)]})
        assert [e.house_id for e in batch.events] == ["h1", "h2"]

    def test_sensor_batch_passes_through(self):
        batch = SensorBatch(events=[])
        assert parse_message(batch) is batch

    def test_empty_events_list_is_valid(self):
        assert parse_message('{"events": []}').events == []

    def test_house_state_is_parsed(self):
        batch = parse_message(
            {
                "events": [],
                "houseState": {"houseId": "h1", "birdCount": 24000, "birdAgeDays": 12, "flockId": "F1"},
            }
        )
        assert batch.house_state.bird_age_days == 12
        assert batch.house_state.flock_id == "F1"


class TestMalformed:

    def test_not_json(self):
        with pytest.raises(MalformedMessage, match="not valid JSON") as info:
            parse_message("not json")
        assert info.value.raw == "not json"

    def test_json_array_is_not_an_object(self):
        with pytest.raises(MalformedMessage, match="expected a JSON object"):
            parse_message("[]")

    def test_none_body(self):
        with pytest.raises(MalformedMessage):
            parse_message(None)

    def test_events_not_a_list(self):
        with pytest.raises(MalformedMessage, match="failed validation"):
            parse_message('{"events": "oops"}')

    def test_missing_events_key(self):
        with pytest.raises(MalformedMessage):
            parse_message({"readings": []})

    def test_one_bad_event_rejects_whole_message(self):
        with pytest.raises(MalformedMessage):
            parse_message({"events": [event_dict(value=1), {"houseId": "h1"}]})

    def test_invalid_utf8(self):
        with pytest.raises(MalformedMessage, match="UTF-8"):
            parse_message(b"\xff\xfe\x00")


class TestLegacyGatewayFormat:

    def test_each_sensor_becomes_an_event(self):
        batch = parse_message(LEGACY_MESSAGE)
        types = {e.event_type: e.value for e in batch.events}
        assert types == {
            "temperature": 27.4,
            "humidity": 61.0,
            "ammonia": 8.2,
            "co2": 1900,
            "feed_level": 72.5,
            "water_flow": 4.9,
            "ventilation": 55,
            "lighting": 20.0,
        }
        assert all(e.house_id == "farm7-house03" for e in batch.events)

    def test_flock_figures_become_house_state(self):
        state = parse_message(json.dumps(LEGACY_MESSAGE)).house_state
        assert state.house_id == "farm7-house03"
        assert state.bird_count == 23800
        assert state.bird_age_days == 18
        assert state.flock_id == "F-2026-07"

    def test_missing_sensor_readings_are_skipped(self):
        message = dict(LEGACY_MESSAGE, sensors={"temperature": 30.1, "humidity": None})
        batch = parse_message(message)
        assert [e.event_type for e in batch.events] == ["temperature"]

    def test_missing_device_id(self):
        message = {k: v for k, v in LEGACY_MESSAGE.items() if k != "deviceId"}
        with pytest.raises(MalformedMessage, match="deviceId"):
            parse_message(message)

    def test_sensors_must_be_an_object(self):
        with pytest.raises(MalformedMessage, match="sensors"):
            parse_message(dict(LEGACY_MESSAGE, sensors=[1, 2, 3]))
