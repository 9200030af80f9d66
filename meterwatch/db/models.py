"""
SQLAlchemy ORM models for the meterwatch database.

Defines the telemetry table (composite primary key (device_id, ts) for
idempotent ingestion), the alarm log, and the device and owner tables the
configuration provider reads limits, tariffs and alert contacts from.

CHANGELOG:
- 2026-10-18: Add Device and Owner for configuration lookups
- 2026-10-18: Initial creation

TODO:
- None
"""

import datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, DateTime, Double, ForeignKey, Integer, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all meterwatch ORM models."""

    pass


class TelemetrySample(Base):
    """One three-phase meter reading.

    Column names match the Reading wire fields one to one. Optional
    quantities are stored as 0 when the device did not send them.
    """

    __tablename__ = "telemetry"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        nullable=False,
    )
    voltage_r: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    voltage_y: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    voltage_b: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    current_r: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    current_y: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    current_b: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    current_n: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    active_power: Mapped[float] = mapped_column(Double, nullable=False)
    apparent_power: Mapped[float] = mapped_column(Double, nullable=False)
    reactive_power: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    power_factor: Mapped[float] = mapped_column(Double, nullable=False)
    frequency: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    energy_kwh: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    energy_kvah: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    energy_kvarh: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    meter_temperature: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    v_thd_r: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    v_thd_y: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    v_thd_b: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    i_thd_r: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    i_thd_y: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    i_thd_b: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)

    def __repr__(self) -> str:
        return (
            f"TelemetrySample(device_id={self.device_id!r}, "
            f"ts={self.ts!r}, apparent_power={self.apparent_power!r})"
        )


class AlarmLog(Base):
    """A logged fault event. Every fault is logged, notified or not."""

    __tablename__ = "alarm_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    ts: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    alarm_type: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[float] = mapped_column(Double, nullable=False)
    threshold: Mapped[float] = mapped_column(Double, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"AlarmLog(device_id={self.device_id!r}, ts={self.ts!r}, "
            f"alarm_type={self.alarm_type!r})"
        )


class Owner(Base):
    """Tenant owning one or more devices.

    Attributes:
        email: Account email.
        alert_email: Preferred alert address; falls back to ``email``.
        alerts_enabled: Email alert preference.
        plan: Subscription plan name, e.g. ``free`` or ``pro``.
    """

    __tablename__ = "owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    alert_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    alerts_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    plan: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'essential'"))

    def __repr__(self) -> str:
        return f"Owner(id={self.id!r}, plan={self.plan!r})"


class Device(Base):
    """A metering device with its thresholds and tariff configuration.

    Limit columns are nullable; an unset limit uses the provisioning
    default of DeviceLimits.
    """

    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True)
    device_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("owners.id", ondelete="SET NULL"), nullable=True
    )
    v_ov: Mapped[float | None] = mapped_column(Double, nullable=True)
    v_uv: Mapped[float | None] = mapped_column(Double, nullable=True)
    v_imb: Mapped[float | None] = mapped_column(Double, nullable=True)
    i_oc: Mapped[float | None] = mapped_column(Double, nullable=True)
    i_imb: Mapped[float | None] = mapped_column(Double, nullable=True)
    i_neu: Mapped[float | None] = mapped_column(Double, nullable=True)
    t_int: Mapped[float | None] = mapped_column(Double, nullable=True)
    allotted_load: Mapped[float | None] = mapped_column(Double, nullable=True)
    pf_lag: Mapped[float | None] = mapped_column(Double, nullable=True)
    pf_lead: Mapped[float | None] = mapped_column(Double, nullable=True)
    tariff_config: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"Device(device_id={self.device_id!r}, owner_id={self.owner_id!r})"
