"""
Threshold evaluator: reading + device limits -> ordered fault events.

Every check runs on every reading; one reading can raise several
independent faults. The order of the returned list is the order of the
checks below, which the alert dispatcher relies on when it picks the
priority fault.

Checks:
1. Voltage: over-voltage (CRITICAL), else under-voltage (WARNING) unless the
   lowest phase reads as an offline meter.
2. Current: over-current (CRITICAL).
3. Capacity: apparent power above the allotted load (CRITICAL).
4. Power factor, only with load present: poor lagging or unstable leading
   PF (WARNING).
5. Phase imbalance, only with meaningful load (WARNING).
6. Neutral current (WARNING).
7. Internal temperature (DANGER).

Lead/lag is classified from the sign of reactive power. Meter vendors are
not consistent about that sign, so treat it as an assumption to verify on
real hardware.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from meterwatch.models import DeviceLimits, FaultEvent, FaultType, Reading, Severity

# ============================================================================
# Activity guards
# ============================================================================

OFFLINE_VOLTAGE_V = 50.0
"""Lowest phase at or below this is a meter-offline read, not a sag."""

PF_MIN_LOAD_A = 5.0
"""Power factor is only judged when some phase carries more than this."""

IMBALANCE_MIN_LOAD_A = 10.0
"""Phase imbalance is only judged when some phase carries more than this."""


def _fault(
    reading: Reading,
    fault_type: FaultType,
    severity: Severity,
    message: str,
    value: float,
    threshold: float,
) -> FaultEvent:
    return FaultEvent(
        type=fault_type,
        severity=severity,
        message=message,
        value=value,
        threshold=threshold,
        device_id=reading.device_id,
        ts=reading.ts,
    )


def _check_voltage(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    max_v = max(reading.voltages)
    min_v = min(reading.voltages)
    if max_v > limits.v_ov:
        return [
            _fault(
                reading,
                FaultType.OVER_VOLTAGE,
                Severity.CRITICAL,
                f"Surge: {max_v:.1f}V > {limits.v_ov:.1f}V",
                max_v,
                limits.v_ov,
            )
        ]
    if min_v < limits.v_uv and min_v > OFFLINE_VOLTAGE_V:
        return [
            _fault(
                reading,
                FaultType.UNDER_VOLTAGE,
                Severity.WARNING,
                f"Sag: {min_v:.1f}V < {limits.v_uv:.1f}V",
                min_v,
                limits.v_uv,
            )
        ]
    return []


def _check_current(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    max_i = max(reading.currents)
    if max_i > limits.i_oc:
        return [
            _fault(
                reading,
                FaultType.OVER_CURRENT,
                Severity.CRITICAL,
                f"Over Current: {max_i:.1f}A > {limits.i_oc:.1f}A",
                max_i,
                limits.i_oc,
            )
        ]
    return []


def _check_capacity(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    kva = reading.apparent_power
    limit = limits.allotted_load
    if limit > 0 and kva > limit:
        overshoot_pct = (kva - limit) / limit * 100
        return [
            _fault(
                reading,
                FaultType.CAPACITY_EXCEEDED,
                Severity.CRITICAL,
                f"Capacity Overload: {kva:.1f} kVA > {limit:.1f} kVA "
                f"(+{overshoot_pct:.1f}%)",
                kva,
                limit,
            )
        ]
    return []


def _check_power_factor(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    if max(reading.currents) <= PF_MIN_LOAD_A:
        return []

    pf = reading.power_factor
    if reading.reactive_power >= 0:
        if 0 < pf < limits.pf_lag:
            return [
                _fault(
                    reading,
                    FaultType.PF_LAG_POOR,
                    Severity.WARNING,
                    f"Poor Efficiency (Lag): PF {pf:.2f} < {limits.pf_lag:.2f}",
                    pf,
                    limits.pf_lag,
                )
            ]
    elif 0 < pf < limits.pf_lead:
        return [
            _fault(
                reading,
                FaultType.PF_LEAD_UNSTABLE,
                Severity.WARNING,
                f"Unstable Leading PF: {pf:.2f} < {limits.pf_lead:.2f}",
                pf,
                limits.pf_lead,
            )
        ]
    return []


def _check_imbalance(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    currents = reading.currents
    if max(currents) <= IMBALANCE_MIN_LOAD_A:
        return []

    avg = sum(currents) / len(currents)
    if avg <= 0:
        return []

    max_deviation = max(abs(i - avg) for i in currents)
    imbalance_pct = max_deviation / avg * 100
    if imbalance_pct > limits.i_imb:
        return [
            _fault(
                reading,
                FaultType.PHASE_IMBALANCE,
                Severity.WARNING,
                f"Phase Imbalance: {imbalance_pct:.1f}% > {limits.i_imb:.1f}%",
                imbalance_pct,
                limits.i_imb,
            )
        ]
    return []


def _check_neutral(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    if reading.current_n > limits.i_neu:
        return [
            _fault(
                reading,
                FaultType.NEUTRAL_OVERCURRENT,
                Severity.WARNING,
                f"High Neutral Current: {reading.current_n:.1f}A > {limits.i_neu:.1f}A",
                reading.current_n,
                limits.i_neu,
            )
        ]
    return []


def _check_temperature(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    temp = reading.meter_temperature
    if temp > limits.t_int:
        return [
            _fault(
                reading,
                FaultType.OVER_TEMPERATURE,
                Severity.DANGER,
                f"Overheating: {temp:.1f}°C > {limits.t_int:.1f}°C",
                temp,
                limits.t_int,
            )
        ]
    return []


_CHECKS = (
    _check_voltage,
    _check_current,
    _check_capacity,
    _check_power_factor,
    _check_imbalance,
    _check_neutral,
    _check_temperature,
)


# ============================================================================
# Public API
# ============================================================================


def evaluate(reading: Reading, limits: DeviceLimits) -> list[FaultEvent]:
    """Evaluate a reading against a device's safety limits.

    Pure and deterministic: same input, same output. No check
    short-circuits another.

    Args:
        reading: Validated telemetry sample.
        limits: The device's thresholds at the time of evaluation.

    Returns:
        List of fault events in check order; empty when the reading is
        within limits.
    """
    faults: list[FaultEvent] = []
    for check in _CHECKS:
        faults.extend(check(reading, limits))
    return faults
