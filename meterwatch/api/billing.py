"""
Billing endpoints: batch recompute over a date range and the live ledger.

- GET  /v1/billing/{device_id}?start=&end=  recompute from stored readings
- GET  /v1/billing/{device_id}/live         today's live snapshot
- POST /v1/billing/{device_id}/live         rebuild today's live period

Date ranges are inclusive calendar days in the billing timezone. Contract
demand, demand rate and tax may be overridden per request; otherwise the
device's tariff values apply.

CHANGELOG:
- 2026-10-18: Query reopen readings inside the ledger lock
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from meterwatch.api.deps import get_calculator, get_config_provider, get_ledger, get_store
from meterwatch.errors import ConfigLookupError, PersistenceError
from meterwatch.interfaces import DeviceConfigProvider, TelemetryStore
from meterwatch.models import Reading, TariffSchedule
from meterwatch.services.billing import BillingCalculator, LiveBillingLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def day_start(day: date, tz: tzinfo | None) -> datetime:
    """Return local midnight of *day* as an aware datetime (UTC when tz is None)."""
    return datetime.combine(day, time.min, tzinfo=tz or UTC)


async def _tariff_or_404(config: DeviceConfigProvider, device_id: str) -> TariffSchedule:
    try:
        return await config.get_tariff(device_id)
    except ConfigLookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from None


async def _readings_or_503(
    store: TelemetryStore, start: datetime, end: datetime, device_id: str
) -> list[Reading]:
    try:
        return await store.query_range(start, end, device_id)
    except PersistenceError:
        logger.error("Billing query failed for %s", device_id, exc_info=True)
        raise HTTPException(
            status_code=503,
            detail="Telemetry store unavailable, retry later.",
        ) from None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/{device_id}")
async def billing_range(
    device_id: str,
    start: Annotated[date, Query()],
    end: Annotated[date, Query()],
    store: Annotated[TelemetryStore, Depends(get_store)],
    config: Annotated[DeviceConfigProvider, Depends(get_config_provider)],
    calculator: Annotated[BillingCalculator, Depends(get_calculator)],
    contract_demand: Annotated[float | None, Query(gt=0)] = None,
    demand_rate: Annotated[float | None, Query(ge=0)] = None,
    tax_percent: Annotated[float | None, Query(ge=0)] = None,
) -> dict[str, Any]:
    """Recompute the bill of a device for the inclusive range [start, end].

    Raises:
        HTTPException: 422 if end precedes start, 404 for an unknown device,
            503 if readings cannot be loaded.
    """
    if end < start:
        raise HTTPException(status_code=422, detail="end must not precede start")

    tariff = await _tariff_or_404(config, device_id)
    readings = await _readings_or_503(
        store,
        day_start(start, calculator.tz),
        day_start(end + timedelta(days=1), calculator.tz),
        device_id,
    )
    state = calculator.analyze(
        readings,
        tariff,
        contract_demand=contract_demand,
        demand_rate=demand_rate,
        tax_percent=tax_percent,
        device_id=device_id,
        period_start=start,
        period_end=end,
    )
    logger.info(
        "Billing recompute for %s %s..%s over %d reading(s)",
        device_id,
        start.isoformat(),
        end.isoformat(),
        state.reading_count,
    )
    return state.to_dict()


@router.get("/{device_id}/live")
async def billing_live(
    device_id: str,
    ledger: Annotated[LiveBillingLedger, Depends(get_ledger)],
) -> dict[str, Any]:
    """Return today's live billing snapshot.

    Raises:
        HTTPException: 404 if no live period is open for the device.
    """
    state = ledger.snapshot(device_id)
    if state is None:
        raise HTTPException(
            status_code=404,
            detail=f"No live billing period for device_id '{device_id}'.",
        )
    return state.to_dict()


@router.post("/{device_id}/live")
async def billing_live_reopen(
    device_id: str,
    store: Annotated[TelemetryStore, Depends(get_store)],
    config: Annotated[DeviceConfigProvider, Depends(get_config_provider)],
    ledger: Annotated[LiveBillingLedger, Depends(get_ledger)],
) -> dict[str, Any]:
    """Rebuild today's live period from today's stored readings."""
    tariff = await _tariff_or_404(config, device_id)
    today = ledger.today()
    tz = ledger.calculator.tz

    async def _load_today() -> list[Reading]:
        return await _readings_or_503(
            store,
            day_start(today, tz),
            day_start(today + timedelta(days=1), tz),
            device_id,
        )

    state = await ledger.open_period(device_id, tariff, load=_load_today)
    return state.to_dict()
