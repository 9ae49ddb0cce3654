"""
models.py – Shared Pydantic data-models used across the pipeline.

Design decisions
----------------
* All models are **frozen** (immutable after creation) so events can be
  grouped, passed between stages and replayed without copying.
* Inbound gateway JSON is camelCase (``houseId``, ``eventType``); every model
  accepts the camelCase alias *and* the snake_case field name, so rows read
  from PostgreSQL validate through the same classes.
* The meaningful payload of a ``SensorEvent`` is one of ``value``,
  ``stringValue`` or ``boolValue``.  Which one is decided by the event type's
  declared kind, supplied as reference data (``DEFAULT_EVENT_KINDS`` unless a
  caller injects its own mapping) and exposed as a tagged union.
* ``InvalidEvent`` gives the quarantine topic a typed schema so downstream
  consumers can parse rejected payloads predictably.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Mapping, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, field_validator
from pydantic.alias_generators import to_camel


_MODEL_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


# Event kinds and payload union
# =======================================================================

class EventKind(str, Enum):
    """Declared payload kind of an event type."""

    NUMERIC = "numeric"
    TEXT = "text"
    FLAG = "flag"


# Reference mapping for the sensors fitted to a standard house controller.
# Event types missing from the mapping are treated as numeric.
DEFAULT_EVENT_KINDS: dict[str, EventKind] = {
    "temperature": EventKind.NUMERIC,
    "humidity": EventKind.NUMERIC,
    "ammonia": EventKind.NUMERIC,
    "co2": EventKind.NUMERIC,
    "feed_level": EventKind.NUMERIC,
    "water_flow": EventKind.NUMERIC,
    "ventilation": EventKind.NUMERIC,
    "lighting": EventKind.NUMERIC,
    "fan_status": EventKind.FLAG,
    "heater_status": EventKind.FLAG,
    "alarm_status": EventKind.FLAG,
    "device_status": EventKind.TEXT,
}


class NumericPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["numeric"] = "numeric"
    value: float


class TextPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str


class FlagPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["flag"] = "flag"
    value: bool


EventPayload = Annotated[
    Union[NumericPayload, TextPayload, FlagPayload],
    Field(discriminator="kind"),
]


# Core domain event
# =======================================================================

class SensorEvent(BaseModel):
    """
    A single telemetry reading published by a house gateway.

    Fields
    ------
    house_id     : Device-facing house identifier (device string or house UUID).
    event_type   : Metric code, e.g. ``temperature`` or ``fan_status``.
    timestamp    : Time the reading was taken.  Naive values are taken as UTC.
    value        : Numeric reading, for numeric event types.
    string_value : Text reading, for text event types.
    bool_value   : On/off reading, for flag event types.
    device_id    : Identifier of the sensor that produced the reading.
    quality      : Optional signal quality score in [0, 100].
    """

    model_config = _MODEL_CONFIG

    house_id: str = Field(description="Device-facing house identifier.")
    event_type: str = Field(description="Event-type code, e.g. 'temperature'.")
    timestamp: datetime = Field(description="Time the reading was taken.")
    value: FiniteFloat | None = Field(default=None)
    string_value: str | None = Field(default=None)
    bool_value: bool | None = Field(default=None)
    device_id: str | None = Field(default=None)
    quality: int | None = Field(default=None, ge=0, le=100)

    @field_validator("house_id", "event_type")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        """Reject blank or whitespace-only identifiers."""
        stripped = value.strip()
        if not stripped:
            raise ValueError("identifier cannot be empty or whitespace")
        return stripped

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp_tz(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def kind(self, kinds: Mapping[str, EventKind] | None = None) -> EventKind:
        """Return the declared payload kind of this event's type."""
        mapping = DEFAULT_EVENT_KINDS if kinds is None else kinds
        return EventKind(mapping.get(self.event_type, EventKind.NUMERIC))

    def payload(
        self, kinds: Mapping[str, EventKind] | None = None
    ) -> EventPayload | None:
        """
        Return the semantically meaningful payload for this event.

        Parameters
        ----------
        kinds:
            Event-type → kind mapping.  Defaults to ``DEFAULT_EVENT_KINDS``.

        Returns
        -------
        EventPayload | None
            ``None`` when the slot selected by the kind is empty.
        """
        kind = self.kind(kinds)
        if kind is EventKind.NUMERIC:
            return None if self.value is None else NumericPayload(value=self.value)
        if kind is EventKind.TEXT:
            return None if self.string_value is None else TextPayload(value=self.string_value)
        return None if self.bool_value is None else FlagPayload(value=self.bool_value)


class HouseLiveState(BaseModel):
    """Flock figures reported alongside a batch; applied last-write-wins."""

    model_config = _MODEL_CONFIG

    house_id: str
    bird_count: int | None = Field(default=None, ge=0)
    bird_age_days: int | None = Field(default=None, ge=0)
    flock_id: str | None = None

    @field_validator("house_id")
    @classmethod
    def validate_house_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("house_id cannot be empty or whitespace")
        return stripped


class SensorBatch(BaseModel):
    """One parsed ingress message: the unit handed to persister and evaluator."""

    model_config = _MODEL_CONFIG

    events: list[SensorEvent]
    house_state: HouseLiveState | None = None


# Reference and state records (read from the store)
# =======================================================================

class House(BaseModel):
    """A physical poultry house as stored in the ``houses`` table."""

    model_config = _MODEL_CONFIG

    id: UUID
    device_id: str | None = None
    name: str = ""
    bird_count: int | None = None
    bird_age_days: int | None = None
    flock_id: str | None = None
    status: str | None = None


class ThresholdPolicy(BaseModel):
    """
    Age-banded threshold rule for one event type.

    Any of the four bounds may be ``None``, meaning "no bound in that
    direction".  ``unit`` is appended verbatim to values in alert messages.
    """

    model_config = _MODEL_CONFIG

    event_type: str
    age_min_days: int = 0
    age_max_days: int | None = None
    warning_min: float | None = None
    warning_max: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None
    display_name: str
    unit: str = ""


# Alert (written to the ``alerts`` table)
# =======================================================================

class Alert(BaseModel):
    """
    A threshold violation raised for a house.

    Fields
    ------
    house_id   : Canonical UUID of the house.
    type       : Always ``threshold`` for alerts raised by the evaluator.
    severity   : ``critical`` when a critical bound was crossed, else ``warning``.
    metric     : Event-type code of the violating reading.
    value      : The observed value.
    threshold  : The bound that was crossed.
    message    : Human-readable description.
    is_active  : New alerts are always active.
    event_time : Timestamp of the violating reading.
    """

    model_config = _MODEL_CONFIG

    house_id: UUID
    type: str = "threshold"
    severity: Literal["warning", "critical"]
    metric: str
    value: float
    threshold: float
    message: str
    is_active: bool = True
    event_time: datetime | None = None


# Invalid message envelope (written to the quarantine topic)
# =======================================================================

class InvalidEvent(BaseModel):
    """
    Envelope written to the quarantine topic for messages that failed parsing.

    Fields
    ------
    error       : Human-readable description of why the message was rejected.
    raw         : The original raw message payload as a string for debugging.
    error_type  : ``VALIDATION`` (schema issue) or ``PROCESSING`` (unexpected error).
    """

    model_config = ConfigDict(frozen=True)

    error: str = Field(description="Error message explaining the rejection reason.")
    raw: str = Field(description="Original raw message value (UTF-8 string).")
    error_type: str = Field(
        default="VALIDATION",
        description="'VALIDATION' for schema errors, 'PROCESSING' for unexpected failures.",
    )
