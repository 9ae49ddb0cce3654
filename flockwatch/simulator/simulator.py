"""
simulator.py – Synthetic poultry-house telemetry generator.

Design
------
Each simulated house gets a **stable per-house profile** when the simulator
starts: a device identifier, a flock, a bird count and a bird age.  Every
message carries one reading per environmental sensor, sampled as Gaussian
noise around comfortable set-points so consecutive messages from one house
look coherent.

Two knobs exercise the consumer's less common paths:

* ``violation_ratio`` – chance that a message pushes one metric far outside
  its comfortable range (drives threshold alerts);
* ``malformed_ratio`` – chance that a message body is not a valid batch at all
  (drives the quarantine path).

Usage
-----
>>> stream = telemetry_stream(house_count=4)
>>> key, body = next(stream)
"""

import json
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator


# Sensor set-points: event type → (mean, stddev, floor)
_SET_POINTS: dict[str, tuple[float, float, float]] = {
    "temperature": (24.0, 1.2, -10.0),
    "humidity": (60.0, 4.0, 0.0),
    "ammonia": (8.0, 2.5, 0.0),
    "co2": (1800.0, 250.0, 300.0),
    "feed_level": (65.0, 15.0, 0.0),
    "water_flow": (5.0, 0.8, 0.0),
    "ventilation": (55.0, 12.0, 0.0),
    "lighting": (20.0, 4.0, 0.0),
}

# Values well outside any sensible band, used for injected violations.
_EXCURSIONS: dict[str, tuple[float, ...]] = {
    "temperature": (36.5, 9.0),
    "humidity": (91.0, 28.0),
    "ammonia": (38.0,),
    "co2": (4600.0,),
    "water_flow": (0.2,),
}

_MALFORMED_BODIES = (
    "not json",
    '{"events": "not-a-list"}',
    "[]",
    '{"events": [{"houseId": "", "eventType": "temperature"}]}',
)


@dataclass(frozen=True)
class HouseProfile:
    device_id: str
    flock_id: str
    bird_count: int
    bird_age_days: int


def house_id_pool(house_count: int) -> list[str]:
    """
    Create a deterministic list of device identifiers.

    Returns
    -------
    list[str]
        Identifiers in the form ``["sim-house-001", "sim-house-002", ...]``.
    """
    return [f"sim-house-{i:03d}" for i in range(1, house_count + 1)]


def _build_profiles(house_count: int) -> dict[str, HouseProfile]:
    return {
        device_id: HouseProfile(
            device_id=device_id,
            flock_id=f"FLOCK-{random.randint(1000, 9999)}",
            bird_count=random.randint(18_000, 32_000),
            bird_age_days=random.randint(1, 42),
        )
        for device_id in house_id_pool(house_count)
    }


def _sample(event_type: str) -> float:
    mean, sigma, floor = _SET_POINTS[event_type]
    return round(max(floor, random.gauss(mu=mean, sigma=sigma)), 2)


def build_message(
    profile: HouseProfile,
    timestamp: datetime,
    violation: bool = False,
) -> dict:
    """
    Build one gateway message in the ``{"events": [...], "houseState": {...}}`` shape.

    When ``violation`` is set, one randomly chosen metric is replaced by an
    out-of-range excursion value.
    """
    readings = {event_type: _sample(event_type) for event_type in _SET_POINTS}
    if violation:
        metric = random.choice(list(_EXCURSIONS))
        readings[metric] = random.choice(_EXCURSIONS[metric])

    stamp = timestamp.isoformat()
    events = [
        {
            "houseId": profile.device_id,
            "eventType": event_type,
            "timestamp": stamp,
            "value": value,
            "deviceId": f"{profile.device_id}-{event_type}",
            "quality": random.randint(85, 100),
        }
        for event_type, value in readings.items()
    ]
    events.append(
        {
            "houseId": profile.device_id,
            "eventType": "fan_status",
            "timestamp": stamp,
            "boolValue": readings["ventilation"] > 20.0,
            "deviceId": f"{profile.device_id}-fans",
        }
    )
    return {
        "events": events,
        "houseState": {
            "houseId": profile.device_id,
            "birdCount": profile.bird_count,
            "birdAgeDays": profile.bird_age_days,
            "flockId": profile.flock_id,
        },
    }


def telemetry_stream(
    house_count: int,
    violation_ratio: float = 0.0,
    malformed_ratio: float = 0.0,
) -> Iterator[tuple[str, str]]:
    """
    Infinite generator of ``(key, body)`` pairs ready to publish.

    ``key`` is the house device identifier, so all messages for one house land
    on the same partition.  About 5% of messages are back-dated by a few
    seconds to mimic gateway clock skew and late delivery.

    Parameters
    ----------
    house_count:
        Number of simulated houses.
    violation_ratio:
        Fraction of messages carrying one out-of-range reading.
    malformed_ratio:
        Fraction of messages whose body is unparseable or fails validation.
    """
    for name, ratio in (("violation_ratio", violation_ratio), ("malformed_ratio", malformed_ratio)):
        if not (0.0 <= ratio <= 1.0):
            raise ValueError(f"{name} must be in [0.0, 1.0]")

    profiles = _build_profiles(house_count)
    keys = list(profiles)

    while True:
        key = random.choice(keys)
        if random.random() < malformed_ratio:
            yield key, random.choice(_MALFORMED_BODIES)
            continue

        timestamp = datetime.now(timezone.utc)
        if random.random() < 0.05:
            timestamp = timestamp - timedelta(seconds=random.randint(1, 30))

        message = build_message(
            profiles[key],
            timestamp,
            violation=random.random() < violation_ratio,
        )
        yield key, json.dumps(message)
