"""
Tests for the SQL adapters, with a mocked async session.

CHANGELOG:
- 2026-10-18: Initial creation
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from meterwatch.db.models import AlarmLog, Device, Owner, TelemetrySample
from meterwatch.db.repository import (
    SqlDeviceConfigProvider,
    SqlFaultLog,
    SqlTelemetryStore,
    sample_to_reading,
)
from meterwatch.errors import ConfigLookupError, PersistenceError
from meterwatch.models import DeviceLimits, FaultEvent, FaultType, Severity

from conftest import BASE_TS


def _compiled(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestSqlTelemetryStore:
    @pytest.mark.asyncio
    async def test_append_inserted(self, session_factory, mock_db_session, make_reading) -> None:
        mock_db_session.execute = AsyncMock(return_value=MagicMock(rowcount=1))
        store = SqlTelemetryStore(session_factory)

        assert await store.append(make_reading()) is True

        stmt = mock_db_session.execute.call_args.args[0]
        sql = _compiled(stmt)
        assert "INSERT INTO telemetry" in sql
        assert "ON CONFLICT (device_id, ts) DO NOTHING" in sql
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_append_duplicate(self, session_factory, mock_db_session, make_reading) -> None:
        mock_db_session.execute = AsyncMock(return_value=MagicMock(rowcount=0))
        assert await SqlTelemetryStore(session_factory).append(make_reading()) is False

    @pytest.mark.asyncio
    async def test_append_failure(self, session_factory, mock_db_session, make_reading) -> None:
        mock_db_session.execute = AsyncMock(
            side_effect=OperationalError("INSERT", {}, Exception("connection refused"))
        )
        with pytest.raises(PersistenceError):
            await SqlTelemetryStore(session_factory).append(make_reading())

    @pytest.mark.asyncio
    async def test_query_range_maps_rows(self, session_factory, mock_db_session) -> None:
        sample = TelemetrySample(
            device_id="dev-1",
            ts=BASE_TS,
            active_power=30.0,
            apparent_power=32.0,
            power_factor=0.94,
            voltage_r=415.0,
        )
        result = MagicMock()
        result.scalars.return_value.all.return_value = [sample]
        mock_db_session.execute = AsyncMock(return_value=result)

        readings = await SqlTelemetryStore(session_factory).query_range(
            BASE_TS, BASE_TS + timedelta(hours=1), "dev-1"
        )

        assert len(readings) == 1
        assert readings[0].apparent_power == 32.0
        assert readings[0].voltage_r == 415.0
        assert readings[0].current_n == 0.0
        sql = _compiled(mock_db_session.execute.call_args.args[0])
        assert "ORDER BY telemetry.ts" in sql
        assert "telemetry.device_id" in sql

    @pytest.mark.asyncio
    async def test_query_recent_uses_clock(self, session_factory, mock_db_session, clock) -> None:
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db_session.execute = AsyncMock(return_value=result)
        store = SqlTelemetryStore(session_factory, clock=clock)

        assert await store.query_recent(timedelta(minutes=10)) == []
        params = mock_db_session.execute.call_args.args[0].compile().params
        assert BASE_TS - timedelta(minutes=10) in params.values()

    @pytest.mark.asyncio
    async def test_query_failure(self, session_factory, mock_db_session) -> None:
        mock_db_session.execute = AsyncMock(side_effect=SQLAlchemyError("boom"))
        with pytest.raises(PersistenceError):
            await SqlTelemetryStore(session_factory).query_range(BASE_TS, BASE_TS)


class TestSampleMapping:
    def test_round_trip_fields(self, make_reading) -> None:
        reading = make_reading(v_thd_r=3.5)
        sample = TelemetrySample(**reading.model_dump())
        assert sample_to_reading(sample) == reading


class TestSqlFaultLog:
    @pytest.mark.asyncio
    async def test_append(self, session_factory, mock_db_session) -> None:
        event = FaultEvent(
            type=FaultType.OVER_TEMPERATURE,
            severity=Severity.DANGER,
            message="Overheating: 80.0°C > 75.0°C",
            value=80.0,
            threshold=75.0,
            device_id="dev-1",
            ts=BASE_TS,
        )
        await SqlFaultLog(session_factory).append(event)

        (row,) = mock_db_session.add.call_args.args
        assert isinstance(row, AlarmLog)
        assert row.alarm_type == "over-temperature"
        assert row.severity == "DANGER"
        assert row.value == 80.0
        mock_db_session.commit.assert_awaited_once()


class TestSqlDeviceConfigProvider:
    @pytest.fixture()
    def provider(self, session_factory, mock_db_session) -> SqlDeviceConfigProvider:
        device = Device(
            device_id="dev-1",
            device_name="Main Panel",
            owner_id=1,
            v_ov=440.0,
            allotted_load=250.0,
            tariff_config={
                "shifts": {"B": {"start": "18", "end": 22, "rate": "11"}},
                "contract_demand": 300,
                "tax_percent": "bogus",
            },
        )
        owner = Owner(id=1, email="account@example.com", alert_email=None,
                      alerts_enabled=True, plan="pro")

        async def _get(model, key):
            if model is Device:
                return device if key == "dev-1" else None
            if model is Owner:
                return owner if key == 1 else None
            return None

        mock_db_session.get = AsyncMock(side_effect=_get)
        return SqlDeviceConfigProvider(session_factory)

    @pytest.mark.asyncio
    async def test_limits_fill_unset_with_defaults(self, provider) -> None:
        limits = await provider.get_limits("dev-1")
        assert limits.v_ov == 440.0
        assert limits.allotted_load == 250.0
        assert limits.v_uv == DeviceLimits().v_uv

    @pytest.mark.asyncio
    async def test_tariff_parsed_leniently(self, provider) -> None:
        tariff = await provider.get_tariff("dev-1")
        assert tariff.shifts["B"].start == 18
        assert tariff.shifts["B"].rate == 11.0
        assert tariff.contract_demand == 300.0
        assert tariff.tax_percent == 18.0

    @pytest.mark.asyncio
    async def test_contact_falls_back_to_account_email(self, provider) -> None:
        contact = await provider.get_owner_contact("dev-1")
        assert contact.email == "account@example.com"
        assert contact.plan == "pro"
        assert contact.alerts_enabled is True

    @pytest.mark.asyncio
    async def test_device_name(self, provider) -> None:
        assert await provider.get_device_name("dev-1") == "Main Panel"

    @pytest.mark.asyncio
    async def test_unknown_device(self, provider) -> None:
        with pytest.raises(ConfigLookupError):
            await provider.get_limits("dev-404")

    @pytest.mark.asyncio
    async def test_database_error(self, session_factory, mock_db_session) -> None:
        mock_db_session.get = AsyncMock(side_effect=SQLAlchemyError("down"))
        with pytest.raises(ConfigLookupError):
            await SqlDeviceConfigProvider(session_factory).get_tariff("dev-1")

    @pytest.mark.asyncio
    async def test_device_without_owner_is_silent(
        self, session_factory, mock_db_session
    ) -> None:
        mock_db_session.get = AsyncMock(return_value=Device(device_id="dev-2"))
        contact = await SqlDeviceConfigProvider(session_factory).get_owner_contact("dev-2")
        assert contact.alerts_enabled is False
        assert contact.email is None
