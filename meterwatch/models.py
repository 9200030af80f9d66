"""
Pydantic models for readings, device configuration and fault events.

A Reading is a single normalized telemetry sample after boundary
validation. DeviceLimits and TariffSchedule are read-only snapshots of a
device's configuration, fetched per reading. FaultEvent is what the
threshold evaluator produces and the alert dispatcher consumes.

CHANGELOG:
- 2026-10-18: Lenient TariffSchedule.from_config for stored JSON tariffs
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

READING_NUMERIC_FIELDS: tuple[str, ...] = (
    "voltage_r",
    "voltage_y",
    "voltage_b",
    "current_r",
    "current_y",
    "current_b",
    "current_n",
    "active_power",
    "apparent_power",
    "reactive_power",
    "power_factor",
    "frequency",
    "energy_kwh",
    "energy_kvah",
    "energy_kvarh",
    "meter_temperature",
    "v_thd_r",
    "v_thd_y",
    "v_thd_b",
    "i_thd_r",
    "i_thd_y",
    "i_thd_b",
)
"""Wire field names of every numeric reading value, in storage order."""


class Reading(BaseModel):
    """A single validated telemetry sample from a three-phase meter.

    Powers are in kW / kVA / kVAR, voltages in volts, currents in amps,
    THD values in percent. The sign of ``reactive_power`` tells lagging
    (>= 0, inductive) from leading (< 0, capacitive) load.

    Attributes:
        device_id: Identifier of the metering device.
        ts: Timezone-aware measurement timestamp.
    """

    model_config = ConfigDict(frozen=True)

    device_id: str
    ts: datetime
    voltage_r: float = 0.0
    voltage_y: float = 0.0
    voltage_b: float = 0.0
    current_r: float = 0.0
    current_y: float = 0.0
    current_b: float = 0.0
    current_n: float = 0.0
    active_power: float = 0.0
    apparent_power: float = 0.0
    reactive_power: float = 0.0
    power_factor: float = 0.0
    frequency: float = 0.0
    energy_kwh: float = 0.0
    energy_kvah: float = 0.0
    energy_kvarh: float = 0.0
    meter_temperature: float = 0.0
    v_thd_r: float = 0.0
    v_thd_y: float = 0.0
    v_thd_b: float = 0.0
    i_thd_r: float = 0.0
    i_thd_y: float = 0.0
    i_thd_b: float = 0.0

    @property
    def voltages(self) -> tuple[float, float, float]:
        return (self.voltage_r, self.voltage_y, self.voltage_b)

    @property
    def currents(self) -> tuple[float, float, float]:
        return (self.current_r, self.current_y, self.current_b)

    def to_broadcast(self) -> dict[str, Any]:
        """Serialise to the JSON-compatible record sent to live subscribers.

        Returns:
            dict: All reading fields with ``ts`` in ISO 8601 format.
        """
        record = self.model_dump(mode="json")
        record["ts"] = self.ts.isoformat()
        return record


# ---------------------------------------------------------------------------
# Device configuration
# ---------------------------------------------------------------------------


class DeviceLimits(BaseModel):
    """Per-device safety thresholds.

    Defaults match the values a device is provisioned with.
    """

    model_config = ConfigDict(frozen=True)

    v_ov: float = 456.0
    v_uv: float = 373.0
    v_imb: float = 3.0
    i_oc: float = 110.0
    i_imb: float = 15.0
    i_neu: float = 30.0
    t_int: float = 75.0
    allotted_load: float = 500.0
    pf_lag: float = 0.90
    pf_lead: float = 0.95


DEFAULT_SHIFT_RATES: dict[str, float] = {"A": 7.5, "B": 9.5, "C": 5.5}
"""Fallback unit rate of a configured shift that carries no rate."""


class Shift(BaseModel):
    """One time-of-use shift. Unset hours mean the shift is not configured."""

    model_config = ConfigDict(frozen=True)

    start: int | None = None
    end: int | None = None
    rate: float | None = None

    @property
    def configured(self) -> bool:
        return self.start is not None and self.end is not None


class TariffSchedule(BaseModel):
    """Shift rates plus the fixed-charge parameters of a device's contract.

    Attributes:
        shifts: Mapping of shift letter (A, B, C) to its definition.
        contract_demand: Contracted demand limit in kVA.
        demand_rate: Monthly demand charge per kVA.
        tax_percent: Tax applied on top of the subtotal.
    """

    model_config = ConfigDict(frozen=True)

    shifts: dict[str, Shift] = Field(default_factory=dict)
    contract_demand: float = 500.0
    demand_rate: float = 280.0
    tax_percent: float = 18.0

    @classmethod
    def from_config(cls, raw: Any) -> TariffSchedule:
        """Build a schedule from a stored JSON tariff config.

        Malformed values are dropped silently so that the schedule falls
        back to defaults rather than failing the reading.

        Args:
            raw: Decoded ``tariff_config`` JSON, usually a dict with a
                ``shifts`` mapping and the three contract parameters.

        Returns:
            TariffSchedule: Best-effort parsed schedule.
        """
        if not isinstance(raw, dict):
            return cls()

        shifts: dict[str, Shift] = {}
        raw_shifts = raw.get("shifts")
        if isinstance(raw_shifts, dict):
            for name in ("A", "B", "C"):
                entry = raw_shifts.get(name)
                if not isinstance(entry, dict):
                    continue
                shifts[name] = Shift(
                    start=_lenient_hour(entry.get("start")),
                    end=_lenient_hour(entry.get("end")),
                    rate=_lenient_float(entry.get("rate")),
                )

        fields: dict[str, Any] = {"shifts": shifts}
        for key in ("contract_demand", "demand_rate", "tax_percent"):
            value = _lenient_float(raw.get(key))
            if value is not None:
                fields[key] = value
        return cls(**fields)


def _lenient_float(value: Any) -> float | None:
    """Coerce *value* to a finite float, or None when that is not possible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _lenient_hour(value: Any) -> int | None:
    """Coerce *value* to an hour of day in 0..24, or None."""
    number = _lenient_float(value)
    if number is None:
        return None
    hour = int(number)
    return hour if 0 <= hour <= 24 else None


class OwnerContact(BaseModel):
    """Alert contact preference of the tenant owning a device."""

    model_config = ConfigDict(frozen=True)

    email: str | None = None
    alerts_enabled: bool = True
    plan: str = "essential"


# ---------------------------------------------------------------------------
# Fault events
# ---------------------------------------------------------------------------


class FaultType(str, Enum):
    """Type tags of threshold violations."""

    OVER_VOLTAGE = "over-voltage"
    UNDER_VOLTAGE = "under-voltage"
    OVER_CURRENT = "over-current"
    CAPACITY_EXCEEDED = "capacity-exceeded"
    PF_LAG_POOR = "pf-lag-poor"
    PF_LEAD_UNSTABLE = "pf-lead-unstable"
    PHASE_IMBALANCE = "phase-imbalance"
    NEUTRAL_OVERCURRENT = "neutral-overcurrent"
    OVER_TEMPERATURE = "over-temperature"


class Severity(str, Enum):
    """Fault severity levels."""

    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    DANGER = "DANGER"


class FaultEvent(BaseModel):
    """A single threshold violation observed on one reading."""

    model_config = ConfigDict(frozen=True)

    type: FaultType
    severity: Severity
    message: str
    value: float
    threshold: float
    device_id: str
    ts: datetime
