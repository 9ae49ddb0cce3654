"""
conftest.py – Offline fixtures: an in-memory ``SensorStore`` and sample data.

Nothing here needs Kafka, PostgreSQL or Docker.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from flockwatch.common.errors import StoreUnavailable
from flockwatch.common.models import Alert, House, SensorEvent, ThresholdPolicy
from flockwatch.common.store import use_store


class InMemoryStore:
    """
    List-backed ``SensorStore`` mirroring the PostgreSQL store's semantics.

    Set ``unavailable`` to make every call raise ``StoreUnavailable``, or
    ``fail_alerts`` to make only ``insert_alert`` fail.
    """

    def __init__(self, houses=(), policies=()) -> None:
        self.houses: list[House] = list(houses)
        self.policies: list[ThresholdPolicy] = list(policies)
        self.events: list[tuple[UUID, SensorEvent]] = []
        self.alerts: list[Alert] = []
        self.unavailable = False
        self.fail_alerts = False

    def _check(self) -> None:
        if self.unavailable:
            raise StoreUnavailable("in-memory store is down")

    def _match(self, house_key: str) -> House | None:
        for house in self.houses:
            if house.device_id == house_key:
                return house
        for house in self.houses:
            if str(house.id) == house_key:
                return house
        return None

    def insert_event_batch(self, events) -> int:
        self._check()
        rows = []
        for event in events:
            house = self._match(event.house_id)
            if house is not None:
                rows.append((house.id, event))
        self.events.extend(rows)
        return len(rows)

    def find_house_by_device_id(self, device_id: str) -> House | None:
        self._check()
        return next((h for h in self.houses if h.device_id == device_id), None)

    def find_house_by_id(self, house_id: UUID) -> House | None:
        self._check()
        return next((h for h in self.houses if h.id == house_id), None)

    def find_threshold_policy(self, event_type: str, bird_age_days: int):
        self._check()
        matches = [
            policy
            for policy in self.policies
            if policy.event_type == event_type
            and policy.age_min_days <= bird_age_days
            and (policy.age_max_days is None or bird_age_days <= policy.age_max_days)
        ]
        return max(matches, key=lambda p: p.age_min_days, default=None)

    def update_house_live_state(self, house_key, bird_count, bird_age_days, flock_id) -> bool:
        self._check()
        house = self._match(house_key)
        if house is None:
            return False
        changes = {
            name: value
            for name, value in (
                ("bird_count", bird_count),
                ("bird_age_days", bird_age_days),
                ("flock_id", flock_id),
            )
            if value is not None
        }
        self.houses[self.houses.index(house)] = house.model_copy(update=changes)
        return True

    def insert_alert(self, alert: Alert) -> None:
        self._check()
        if self.fail_alerts:
            raise RuntimeError("alerts table is locked")
        self.alerts.append(alert)


def make_event(house_id: str = "h1", event_type: str = "temperature", **fields) -> SensorEvent:
    """Helper: build a SensorEvent with a fixed timestamp."""
    fields.setdefault("timestamp", datetime(2026, 10, 1, 6, 0, tzinfo=timezone.utc))
    return SensorEvent(house_id=house_id, event_type=event_type, **fields)


def event_dict(house_id: str = "h1", event_type: str = "temperature", value=None, **extra) -> dict:
    """Helper: the camelCase wire form of one event."""
    body = {
        "houseId": house_id,
        "eventType": event_type,
        "timestamp": "2026-10-01T06:00:00Z",
        **extra,
    }
    if value is not None:
        body["value"] = value
    return body


@pytest.fixture
def house_h1() -> House:
    return House(id=uuid4(), device_id="h1", name="House 1", bird_count=24000, bird_age_days=10)


@pytest.fixture
def temperature_policy() -> ThresholdPolicy:
    """temperature @ 0–20 days: warning above 90, critical above 100."""
    return ThresholdPolicy(
        event_type="temperature",
        age_min_days=0,
        age_max_days=20,
        warning_max=90,
        critical_max=100,
        display_name="Temperature",
        unit="°F",
    )


@pytest.fixture
def store(house_h1, temperature_policy) -> InMemoryStore:
    return InMemoryStore(houses=[house_h1], policies=[temperature_policy])


@pytest.fixture(autouse=True)
def _reset_process_store():
    """Never leak a process-wide store between tests."""
    use_store(None)
    yield
    use_store(None)
