"""
errors.py – Failure taxonomy for the ingestion pipeline.

Only ``StoreUnavailable`` is fatal to a delivery.  The others describe
per-item outcomes that are logged and skipped at their own scope.
"""


class FlockwatchError(Exception):
    """Base class for all pipeline errors."""


class MalformedMessage(FlockwatchError):
    """A message body could not be parsed into a ``SensorBatch``."""

    def __init__(self, reason: str, raw: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.raw = raw


class HouseNotFound(FlockwatchError):
    """An identifier resolved to no house, by device id or by UUID."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"no house matches identifier {identifier!r}")
        self.identifier = identifier


class PolicyNotFound(FlockwatchError):
    """No threshold policy covers the event type at the given bird age."""

    def __init__(self, event_type: str, bird_age_days: int) -> None:
        super().__init__(
            f"no threshold policy for {event_type!r} at {bird_age_days} days"
        )
        self.event_type = event_type
        self.bird_age_days = bird_age_days


class StoreUnavailable(FlockwatchError):
    """The durable store could not be reached or a call failed unrecoverably."""
