"""
Time-of-use billing accrual: live ticks and batch recompute on one formula.

Both entry points are folds over the same two steps:

- ``accrue``: integrate one reading into the running totals. The reading's
  apparent power is held for the time since the previous reading, capped
  at ``duration_cap_h`` (1/60 h). The first reading of a state uses the cap.
  Non-positive elapsed time (duplicate or out-of-order timestamps) counts
  as zero and is logged.
- ``settle``: recompute demand penalty, prorated fixed charge and the final
  bill from the running totals, from scratch.

``analyze`` sorts and deduplicates a batch, then folds ``accrue`` and
settles once. ``tick`` applies ``accrue`` + ``settle`` to a copy of the
state. Replaying a sequence through ``tick`` therefore yields the same
totals as ``analyze`` over the same sequence.

The LiveBillingLedger keeps today's state per device behind a per-device
lock.

CHANGELOG:
- 2026-10-18: Load reopen seed readings under the device lock
- 2026-10-18: Per-shift unit and cost breakdown
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, tzinfo
from typing import Any

from meterwatch.errors import StateInconsistency
from meterwatch.models import Reading, TariffSchedule
from meterwatch.services.locks import KeyedLocks
from meterwatch.services.tariff import DEFAULT_RATE, lookup_rate, resolve_shift

logger = logging.getLogger(__name__)

# ============================================================================
# Billing constants
# ============================================================================

DURATION_CAP_H = 1 / 60
PENALTY_MULTIPLIER = 2.0
DAYS_PER_MONTH = 30
SHIFT_NAMES = ("A", "B", "C")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


# ============================================================================
# State
# ============================================================================


@dataclass
class BillingState:
    """Accumulated billing figures of one device over one period.

    Attributes:
        device_id: Device the state belongs to, if single-device.
        period_start: First day of the billing period.
        period_end: Last day of the billing period.
        contract_demand: Contracted demand (kVA) used for settlement.
        demand_rate: Monthly demand charge per kVA used for settlement.
        tax_percent: Tax percentage used for settlement.
        energy_cost: Sum of per-reading energy cost.
        units_kvah: Sum of billed units.
        peak_demand_kva: Highest apparent power seen.
        penalty: Excess demand penalty.
        fixed_cost: Demand charge prorated to the days with data.
        subtotal: energy_cost + penalty + fixed_cost.
        final_bill: subtotal including tax.
        last_ts: Timestamp of the latest applied reading.
        reading_count: Number of readings accrued.
        daily_costs: Energy cost per local calendar day.
        shift_units: Billed units per tariff shift.
        shift_costs: Energy cost per tariff shift.
    """

    device_id: str | None
    period_start: date | None
    period_end: date | None
    contract_demand: float
    demand_rate: float
    tax_percent: float
    energy_cost: float = 0.0
    units_kvah: float = 0.0
    peak_demand_kva: float = 0.0
    penalty: float = 0.0
    fixed_cost: float = 0.0
    subtotal: float = 0.0
    final_bill: float = 0.0
    last_ts: datetime | None = None
    reading_count: int = 0
    daily_costs: dict[date, float] = field(default_factory=dict)
    shift_units: dict[str, float] = field(default_factory=lambda: dict.fromkeys(SHIFT_NAMES, 0.0))
    shift_costs: dict[str, float] = field(default_factory=lambda: dict.fromkeys(SHIFT_NAMES, 0.0))

    def copy(self) -> BillingState:
        """Return an independent copy, including the per-day and shift maps."""
        return replace(
            self,
            daily_costs=dict(self.daily_costs),
            shift_units=dict(self.shift_units),
            shift_costs=dict(self.shift_costs),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible snapshot."""
        return {
            "device_id": self.device_id,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "contract_demand": self.contract_demand,
            "demand_rate": self.demand_rate,
            "tax_percent": self.tax_percent,
            "energy_cost": self.energy_cost,
            "units_kvah": self.units_kvah,
            "peak_demand_kva": self.peak_demand_kva,
            "penalty": self.penalty,
            "fixed_cost": self.fixed_cost,
            "subtotal": self.subtotal,
            "final_bill": self.final_bill,
            "last_ts": self.last_ts.isoformat() if self.last_ts else None,
            "reading_count": self.reading_count,
            "daily_costs": {d.isoformat(): cost for d, cost in sorted(self.daily_costs.items())},
            "shift_units": dict(self.shift_units),
            "shift_costs": dict(self.shift_costs),
        }


# ============================================================================
# Calculator
# ============================================================================


@dataclass(frozen=True)
class BillingCalculator:
    """Shared billing formula for live and batch accrual.

    Args:
        tz: Zone for shift hours and calendar days. None uses each
            timestamp's own wall clock.
        duration_cap_h: Ceiling for one reading's integration window.
        default_rate: Unit rate when shift A has none configured.
    """

    tz: tzinfo | None = None
    duration_cap_h: float = DURATION_CAP_H
    default_rate: float = DEFAULT_RATE

    # -- helpers ---------------------------------------------------------

    def local_date(self, ts: datetime) -> date:
        if self.tz is not None and ts.tzinfo is not None:
            ts = ts.astimezone(self.tz)
        return ts.date()

    def duration_h(self, previous: datetime | None, ts: datetime) -> float:
        """Integration window for a reading at *ts* following *previous*.

        Raises:
            StateInconsistency: If *ts* is not after *previous*.
        """
        if previous is None:
            return self.duration_cap_h
        elapsed_h = (ts - previous).total_seconds() / 3600
        if elapsed_h <= 0:
            raise StateInconsistency(
                f"reading at {ts.isoformat()} does not follow {previous.isoformat()}"
            )
        return min(elapsed_h, self.duration_cap_h)

    def new_state(
        self,
        tariff: TariffSchedule,
        *,
        device_id: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
        contract_demand: float | None = None,
        demand_rate: float | None = None,
        tax_percent: float | None = None,
    ) -> BillingState:
        """Return an empty, settled state for a new period."""
        state = BillingState(
            device_id=device_id,
            period_start=period_start,
            period_end=period_end if period_end is not None else period_start,
            contract_demand=tariff.contract_demand if contract_demand is None else contract_demand,
            demand_rate=tariff.demand_rate if demand_rate is None else demand_rate,
            tax_percent=tariff.tax_percent if tax_percent is None else tax_percent,
        )
        self.settle(state)
        return state

    # -- shared steps ----------------------------------------------------

    def accrue(self, state: BillingState, reading: Reading, tariff: TariffSchedule) -> None:
        """Integrate one reading into *state* in place."""
        try:
            duration_h = self.duration_h(state.last_ts, reading.ts)
        except StateInconsistency as exc:
            logger.warning(
                "Billing state inconsistency for %s: %s; counting zero duration",
                reading.device_id,
                exc,
            )
            duration_h = 0.0

        kva = reading.apparent_power
        unit_kvah = kva * duration_h
        rate = lookup_rate(tariff, reading.ts, default_rate=self.default_rate, tz=self.tz)
        cost = unit_kvah * rate

        state.units_kvah += unit_kvah
        state.energy_cost += cost
        if kva > state.peak_demand_kva:
            state.peak_demand_kva = kva

        day = self.local_date(reading.ts)
        state.daily_costs[day] = state.daily_costs.get(day, 0.0) + cost

        shift = resolve_shift(tariff, reading.ts, tz=self.tz)
        state.shift_units[shift] = state.shift_units.get(shift, 0.0) + unit_kvah
        state.shift_costs[shift] = state.shift_costs.get(shift, 0.0) + cost

        if state.last_ts is None or reading.ts > state.last_ts:
            state.last_ts = reading.ts
        state.reading_count += 1

    def settle(self, state: BillingState) -> None:
        """Recompute penalty, fixed charge and totals of *state* in place."""
        excess = state.peak_demand_kva - state.contract_demand
        state.penalty = excess * state.demand_rate * PENALTY_MULTIPLIER if excess > 0 else 0.0

        billable_demand = max(state.peak_demand_kva, state.contract_demand)
        monthly_fixed = billable_demand * state.demand_rate
        days = max(1, len(state.daily_costs))
        state.fixed_cost = monthly_fixed / DAYS_PER_MONTH * days

        state.subtotal = state.energy_cost + state.penalty + state.fixed_cost
        state.final_bill = state.subtotal * (1 + state.tax_percent / 100)

    # -- entry points ----------------------------------------------------

    def analyze(
        self,
        readings: Iterable[Reading],
        tariff: TariffSchedule,
        *,
        contract_demand: float | None = None,
        demand_rate: float | None = None,
        tax_percent: float | None = None,
        device_id: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> BillingState:
        """Recompute a billing state from a batch of readings.

        Readings are deduplicated by (device_id, ts) and sorted by
        timestamp, so input order and replayed duplicates do not matter.

        Args:
            readings: Readings of the period, in any order.
            tariff: Tariff schedule for rates and contract defaults.
            contract_demand: Override of the tariff's contract demand.
            demand_rate: Override of the tariff's demand rate.
            tax_percent: Override of the tariff's tax percentage.
            device_id: Device the state is for.
            period_start: First day; defaults to the earliest reading's day.
            period_end: Last day; defaults to the latest reading's day.

        Returns:
            BillingState: Settled state for the whole batch.
        """
        unique: dict[tuple[str, datetime], Reading] = {}
        for reading in readings:
            unique.setdefault((reading.device_id, reading.ts), reading)
        ordered = sorted(unique.values(), key=lambda r: r.ts)

        if ordered:
            if period_start is None:
                period_start = self.local_date(ordered[0].ts)
            if period_end is None:
                period_end = self.local_date(ordered[-1].ts)

        state = BillingState(
            device_id=device_id,
            period_start=period_start,
            period_end=period_end,
            contract_demand=tariff.contract_demand if contract_demand is None else contract_demand,
            demand_rate=tariff.demand_rate if demand_rate is None else demand_rate,
            tax_percent=tariff.tax_percent if tax_percent is None else tax_percent,
        )
        for reading in ordered:
            self.accrue(state, reading, tariff)
        self.settle(state)
        return state

    def tick(
        self,
        state: BillingState,
        reading: Reading,
        tariff: TariffSchedule,
        *,
        contract_demand: float | None = None,
        demand_rate: float | None = None,
        tax_percent: float | None = None,
    ) -> BillingState:
        """Apply one live reading and return the new state.

        *state* itself is left untouched, so a failure part-way never
        leaves a half-updated state behind.
        """
        new = state.copy()
        if contract_demand is not None:
            new.contract_demand = contract_demand
        if demand_rate is not None:
            new.demand_rate = demand_rate
        if tax_percent is not None:
            new.tax_percent = tax_percent
        self.accrue(new, reading, tariff)
        self.settle(new)
        return new


# ============================================================================
# Live ledger
# ============================================================================


class LiveBillingLedger:
    """Today's live billing state per device.

    A reading is ticked only when its local day is today. The first reading
    of a new day opens a fresh period when ``auto_open`` is set; otherwise a
    period has to be opened explicitly with :meth:`open_period`.

    Args:
        calculator: Shared billing formula.
        auto_open: Open today's period on demand.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        calculator: BillingCalculator,
        *,
        auto_open: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.calculator = calculator
        self.auto_open = auto_open
        self._clock = clock
        self._states: dict[str, BillingState] = {}
        self.locks = KeyedLocks()

    def today(self) -> date:
        return self.calculator.local_date(self._clock())

    def snapshot(self, device_id: str) -> BillingState | None:
        """Return a copy of the device's live state, if a period is open."""
        state = self._states.get(device_id)
        return state.copy() if state is not None else None

    def __len__(self) -> int:
        return len(self._states)

    async def open_period(
        self,
        device_id: str,
        tariff: TariffSchedule,
        readings: Iterable[Reading] = (),
        *,
        load: Callable[[], Awaitable[Iterable[Reading]]] | None = None,
    ) -> BillingState:
        """Replace the device's live state with a recompute of today.

        When *load* is given it is awaited while the device lock is held, so
        no live tick can land between loading the readings and installing
        the rebuilt state.

        Args:
            device_id: Device to (re)open.
            tariff: Current tariff schedule of the device.
            readings: Today's stored readings to seed the period with.
            load: Loader for the seed readings, used instead of *readings*.

        Returns:
            BillingState: Copy of the newly installed state.
        """
        today = self.today()
        async with self.locks(device_id):
            if load is not None:
                readings = await load()
            todays = [r for r in readings if self.calculator.local_date(r.ts) == today]
            state = self.calculator.analyze(
                todays,
                tariff,
                device_id=device_id,
                period_start=today,
                period_end=today,
            )
            self._states[device_id] = state
        logger.info(
            "Opened live billing period %s for %s from %d reading(s)",
            today.isoformat(),
            device_id,
            len(todays),
        )
        return state.copy()

    async def apply(self, reading: Reading, tariff: TariffSchedule) -> BillingState | None:
        """Tick *reading* into today's state of its device.

        Returns:
            The new state, or None when the reading is outside the live
            window (not today, or no open period and auto-open disabled).
        """
        today = self.today()
        if self.calculator.local_date(reading.ts) != today:
            logger.debug(
                "Reading %s for %s is outside the live billing day",
                reading.ts.isoformat(),
                reading.device_id,
            )
            return None

        async with self.locks(reading.device_id):
            state = self._states.get(reading.device_id)
            if state is None or state.period_start != today:
                if not self.auto_open:
                    return None
                state = self.calculator.new_state(
                    tariff,
                    device_id=reading.device_id,
                    period_start=today,
                )
                logger.info(
                    "Auto-opened live billing period %s for %s",
                    today.isoformat(),
                    reading.device_id,
                )
            new_state = self.calculator.tick(state, reading, tariff)
            self._states[reading.device_id] = new_state
        return new_state
