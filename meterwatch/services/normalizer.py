"""
Pure normalizer that validates a raw telemetry payload into a Reading.

The wire format is a flat JSON object. Field names are stable; the device
identifier may arrive as ``device_id`` or ``deviceId`` and the timestamp as
``ts`` or ``timestamp``. Unknown fields are ignored and missing optional
numeric fields become 0 here, once, so that nothing downstream has to guess.

Validation rules:
- device id present and non-empty
- active_power, power_factor and apparent_power present and numeric
- active_power >= 0
- 0 <= power_factor <= 1
- every other numeric field, when present, is a finite number

This is a pure function: no I/O and no clock. The fallback timestamp is
passed in by the caller.

CHANGELOG:
- 2026-10-18: Accept falsy device ids such as 0; fall back to deviceId only when absent
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from meterwatch.errors import ReadingValidationError
from meterwatch.models import READING_NUMERIC_FIELDS, Reading

REQUIRED_FIELDS: tuple[str, ...] = ("active_power", "power_factor", "apparent_power")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _extract_device_id(raw: Mapping[str, Any]) -> str:
    device_id = raw.get("device_id")
    if device_id is None:
        device_id = raw.get("deviceId")
    if device_id is None or not str(device_id).strip():
        raise ReadingValidationError("missing_device_id", "Device ID is missing from packet")
    return str(device_id).strip()


def _to_number(name: str, value: Any) -> float:
    """Convert a wire value to a finite float.

    Numeric strings are accepted because some gateways send every value
    quoted. Booleans are not numbers here.
    """
    if isinstance(value, bool):
        raise ReadingValidationError(f"non_numeric:{name}", f"Field '{name}' must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ReadingValidationError(
            f"non_numeric:{name}", f"Field '{name}' must be numeric"
        ) from None
    if not math.isfinite(number):
        raise ReadingValidationError(f"non_numeric:{name}", f"Field '{name}' must be finite")
    return number


def _extract_ts(raw: Mapping[str, Any], received_at: datetime) -> datetime:
    value = raw.get("ts", raw.get("timestamp"))
    if value is None:
        ts = received_at
    elif isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ReadingValidationError(
                "invalid_timestamp", f"Unparseable timestamp '{value[:40]}'"
            ) from None
    else:
        raise ReadingValidationError("invalid_timestamp", "Timestamp must be an ISO 8601 string")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(raw: Mapping[str, Any], *, received_at: datetime) -> Reading:
    """Validate a raw payload and build an immutable Reading.

    Args:
        raw: Decoded JSON object as received on the wire.
        received_at: Timestamp to use when the payload carries none.

    Returns:
        Reading: The validated, normalized reading.

    Raises:
        ReadingValidationError: With a machine-readable ``reason`` when the
            payload cannot be accepted.
    """
    if not isinstance(raw, Mapping):
        raise ReadingValidationError("invalid_payload", "Payload must be a JSON object")

    device_id = _extract_device_id(raw)

    for name in REQUIRED_FIELDS:
        if raw.get(name) is None:
            raise ReadingValidationError(
                f"missing_field:{name}", f"Missing required field: {name}"
            )

    values: dict[str, float] = {}
    for name in READING_NUMERIC_FIELDS:
        value = raw.get(name)
        values[name] = 0.0 if value is None else _to_number(name, value)

    if values["active_power"] < 0:
        raise ReadingValidationError(
            "negative_active_power", "Active power must be non-negative"
        )
    if not 0 <= values["power_factor"] <= 1:
        raise ReadingValidationError(
            "power_factor_out_of_range", "Power factor must be between 0 and 1"
        )

    ts = _extract_ts(raw, received_at)
    return Reading(device_id=device_id, ts=ts, **values)
