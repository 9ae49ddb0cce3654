"""
parsing.py – Turn raw ingress messages into validated ``SensorBatch`` objects.

Nothing untyped crosses this boundary: a message either becomes a
``SensorBatch`` or raises ``MalformedMessage``.

Accepted shapes
---------------
* ``SensorBatch`` instances (already parsed upstream) – returned unchanged.
* Mappings, ``str`` or UTF-8 ``bytes`` holding a JSON object of the form::

      {"events": [{"houseId": ..., "eventType": ..., "timestamp": ..., "value": ...}],
       "houseState": {"houseId": ..., "birdCount": ..., "birdAgeDays": ..., "flockId": ...}}

* The older gateway format that reports one fixed sensor block per house::

      {"deviceId": "farm7-house03", "timestamp": "...", "birdAgeInDays": 18,
       "currentBirds": 23800, "flockId": "F-2026-07",
       "sensors": {"temperature": 27.4, "humidity": 61.0, "ammonia": 8.2, ...}}

  Each sensor present becomes one numeric ``SensorEvent``; the flock figures
  become the batch's ``house_state``.  Any ``alerts`` computed on the device
  are ignored.
"""

import json
from typing import Any, Mapping

from pydantic import ValidationError

from flockwatch.common.errors import MalformedMessage
from flockwatch.common.models import SensorBatch

# Gateway sensor key → event-type code
LEGACY_SENSOR_TYPES: dict[str, str] = {
    "temperature": "temperature",
    "humidity": "humidity",
    "ammonia": "ammonia",
    "co2": "co2",
    "feedLevel": "feed_level",
    "waterFlow": "water_flow",
    "ventilation": "ventilation",
    "lighting": "lighting",
}


def _raw_text(message: Any) -> str:
    """Best-effort text rendering of a message for logs and quarantine."""
    if message is None:
        return ""
    if isinstance(message, str):
        return message
    if isinstance(message, (bytes, bytearray)):
        return bytes(message).decode("utf-8", errors="replace")
    try:
        return json.dumps(message, default=str)
    except (TypeError, ValueError):
        return repr(message)


def expand_legacy_message(payload: Mapping[str, Any], raw: str = "") -> dict[str, Any]:
    """
    Rewrite a fixed-sensor-block gateway message into the ``events`` shape.

    Raises
    ------
    MalformedMessage
        If ``deviceId`` or the ``sensors`` block is missing or mistyped.
    """
    device_id = payload.get("deviceId")
    if not isinstance(device_id, str) or not device_id.strip():
        raise MalformedMessage("legacy message has no deviceId", raw)
    sensors = payload.get("sensors")
    if not isinstance(sensors, Mapping):
        raise MalformedMessage("legacy message 'sensors' must be an object", raw)

    events = [
        {
            "houseId": device_id,
            "eventType": event_type,
            "timestamp": payload.get("timestamp"),
            "value": sensors[key],
            "deviceId": device_id,
        }
        for key, event_type in LEGACY_SENSOR_TYPES.items()
        if sensors.get(key) is not None
    ]
    return {
        "events": events,
        "houseState": {
            "houseId": device_id,
            "birdCount": payload.get("currentBirds"),
            "birdAgeDays": payload.get("birdAgeInDays"),
            "flockId": payload.get("flockId"),
        },
    }


def parse_message(message: Any) -> SensorBatch:
    """
    Parse one ingress message.

    Parameters
    ----------
    message:
        A ``SensorBatch``, a mapping, or a JSON ``str``/``bytes`` body.

    Returns
    -------
    SensorBatch
        The validated batch (possibly with an empty ``events`` list).

    Raises
    ------
    MalformedMessage
        If the body is not JSON, not an object, or fails schema validation.
    """
    if isinstance(message, SensorBatch):
        return message

    raw = _raw_text(message)
    payload = message

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage(f"message is not valid UTF-8: {exc}", raw) from exc

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedMessage(f"message is not valid JSON: {exc}", raw) from exc

    if not isinstance(payload, Mapping):
        raise MalformedMessage(
            f"expected a JSON object, got {type(payload).__name__}", raw
        )

    if "events" not in payload and "sensors" in payload:
        payload = expand_legacy_message(payload, raw)

    try:
        return SensorBatch.model_validate(payload)
    except ValidationError as exc:
        raise MalformedMessage(
            f"message failed validation: {exc.error_count()} error(s): "
            f"{exc.errors(include_url=False)[0]['msg']}",
            raw,
        ) from exc
