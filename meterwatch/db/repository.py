"""
SQL adapters for the pipeline's storage and configuration interfaces.

- SqlTelemetryStore: idempotent insert via INSERT ... ON CONFLICT
  (device_id, ts) DO NOTHING, plus range and recent-window queries.
- SqlFaultLog: appends every fault event to alarm_logs.
- SqlDeviceConfigProvider: reads limits, tariff, display name and owner
  contact from the devices and owners tables.

Each operation opens its own session from the injected factory so the
adapters can be shared by concurrent pipeline invocations. SQLAlchemy
errors are wrapped into PersistenceError or ConfigLookupError.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from meterwatch.db.models import AlarmLog, Device, Owner, TelemetrySample
from meterwatch.errors import ConfigLookupError, PersistenceError
from meterwatch.models import (
    READING_NUMERIC_FIELDS,
    DeviceLimits,
    FaultEvent,
    OwnerContact,
    Reading,
    TariffSchedule,
)

logger = logging.getLogger(__name__)

_LIMIT_FIELDS: tuple[str, ...] = tuple(DeviceLimits.model_fields)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def reading_to_row(reading: Reading) -> dict[str, Any]:
    """Map a Reading to a telemetry insert row."""
    return reading.model_dump()


def sample_to_reading(sample: TelemetrySample) -> Reading:
    """Map a stored TelemetrySample back to a Reading."""
    values = {name: getattr(sample, name) or 0.0 for name in READING_NUMERIC_FIELDS}
    return Reading(device_id=sample.device_id, ts=sample.ts, **values)


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class SqlTelemetryStore:
    """TelemetryStore backed by the telemetry table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def append(self, reading: Reading) -> bool:
        """Insert *reading*; return False when (device_id, ts) already exists.

        Raises:
            PersistenceError: If the database write failed.
        """
        stmt = (
            pg_insert(TelemetrySample)
            .values(reading_to_row(reading))
            .on_conflict_do_nothing(index_elements=["device_id", "ts"])
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"insert failed for {reading.device_id} at {reading.ts.isoformat()}"
            ) from exc

        inserted = result.rowcount > 0
        logger.debug(
            "Stored reading %s at %s (inserted=%s)",
            reading.device_id,
            reading.ts.isoformat(),
            inserted,
        )
        return inserted

    async def query_range(
        self,
        start: datetime,
        end: datetime,
        device_id: str | None = None,
    ) -> list[Reading]:
        """Return readings with ``start <= ts < end``, oldest first.

        Raises:
            PersistenceError: If the query failed.
        """
        stmt = (
            select(TelemetrySample)
            .where(TelemetrySample.ts >= start, TelemetrySample.ts < end)
            .order_by(TelemetrySample.ts)
        )
        if device_id is not None:
            stmt = stmt.where(TelemetrySample.device_id == device_id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                samples = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError("telemetry range query failed") from exc
        return [sample_to_reading(s) for s in samples]

    async def query_recent(
        self,
        window: timedelta,
        device_id: str | None = None,
    ) -> list[Reading]:
        """Return readings of the last *window*, oldest first."""
        now = self._clock()
        return await self.query_range(now - window, now + timedelta(microseconds=1), device_id)


# ---------------------------------------------------------------------------
# Fault log
# ---------------------------------------------------------------------------


class SqlFaultLog:
    """FaultLog backed by the alarm_logs table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, event: FaultEvent) -> None:
        row = AlarmLog(
            device_id=event.device_id,
            ts=event.ts,
            alarm_type=event.type.value,
            severity=event.severity.value,
            message=event.message,
            value=event.value,
            threshold=event.threshold,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"alarm log insert failed for {event.device_id}") from exc


# ---------------------------------------------------------------------------
# Device configuration
# ---------------------------------------------------------------------------


class SqlDeviceConfigProvider:
    """DeviceConfigProvider backed by the devices and owners tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _load(self, device_id: str) -> tuple[Device, Owner | None]:
        try:
            async with self._session_factory() as session:
                device = await session.get(Device, device_id)
                if device is None:
                    raise ConfigLookupError(f"unknown device {device_id}")
                owner = None
                if device.owner_id is not None:
                    owner = await session.get(Owner, device.owner_id)
        except SQLAlchemyError as exc:
            raise ConfigLookupError(f"config lookup failed for {device_id}") from exc
        return device, owner

    async def get_limits(self, device_id: str) -> DeviceLimits:
        device, _ = await self._load(device_id)
        configured = {
            name: getattr(device, name)
            for name in _LIMIT_FIELDS
            if getattr(device, name) is not None
        }
        return DeviceLimits(**configured)

    async def get_tariff(self, device_id: str) -> TariffSchedule:
        device, _ = await self._load(device_id)
        return TariffSchedule.from_config(device.tariff_config)

    async def get_owner_contact(self, device_id: str) -> OwnerContact:
        _, owner = await self._load(device_id)
        if owner is None:
            return OwnerContact(email=None, alerts_enabled=False)
        return OwnerContact(
            email=owner.alert_email or owner.email,
            alerts_enabled=owner.alerts_enabled,
            plan=owner.plan,
        )

    async def get_device_name(self, device_id: str) -> str:
        device, _ = await self._load(device_id)
        return device.device_name or device_id
