"""
Time-of-use rate lookup.

Resolves which tariff shift a timestamp falls into and the unit rate that
applies. Shift B never wraps midnight; shift C may (e.g. 22 -> 6). Any hour
not claimed by B or C belongs to shift A.

This is a pure module: no I/O and no errors. A malformed schedule simply
behaves as if the affected shift were not configured.

CHANGELOG:
- 2026-10-18: Initial creation
"""

from __future__ import annotations

from datetime import datetime, tzinfo

from meterwatch.models import DEFAULT_SHIFT_RATES, Shift, TariffSchedule

DEFAULT_RATE = DEFAULT_SHIFT_RATES["A"]


def _local_hour(ts: datetime, tz: tzinfo | None) -> int:
    if tz is not None and ts.tzinfo is not None:
        ts = ts.astimezone(tz)
    return ts.hour


def _in_window(shift: Shift, hour: int, *, wrap: bool) -> bool:
    start, end = shift.start, shift.end
    if start is None or end is None:
        return False
    if wrap and start > end:
        return hour >= start or hour < end
    return start <= hour < end


def resolve_shift(
    tariff: TariffSchedule,
    ts: datetime,
    *,
    tz: tzinfo | None = None,
) -> str:
    """Return the shift letter ("A", "B" or "C") that covers *ts*.

    Args:
        tariff: The device's tariff schedule.
        ts: Timestamp to classify.
        tz: Zone the shift hours are expressed in. Aware timestamps are
            converted into it; None uses the timestamp's own wall clock.
    """
    hour = _local_hour(ts, tz)

    shift_b = tariff.shifts.get("B")
    if shift_b is not None and _in_window(shift_b, hour, wrap=False):
        return "B"

    shift_c = tariff.shifts.get("C")
    if shift_c is not None and _in_window(shift_c, hour, wrap=True):
        return "C"

    return "A"


def lookup_rate(
    tariff: TariffSchedule,
    ts: datetime,
    *,
    default_rate: float = DEFAULT_RATE,
    tz: tzinfo | None = None,
) -> float:
    """Return the unit rate applicable at *ts*.

    Args:
        tariff: The device's tariff schedule.
        ts: Timestamp of the energy being priced.
        default_rate: Rate used when shift A has no rate configured.
        tz: Zone the shift hours are expressed in.

    Returns:
        float: Currency per kVAh.
    """
    name = resolve_shift(tariff, ts, tz=tz)
    shift = tariff.shifts.get(name)

    if name == "A":
        if shift is None or shift.rate is None:
            return default_rate
        return shift.rate

    # B and C only resolve when configured; a missing rate uses the shift default.
    if shift.rate is None:
        return DEFAULT_SHIFT_RATES[name]
    return shift.rate
