"""
Tests for time-of-use shift resolution and rate lookup.

CHANGELOG:
- 2026-10-18: Initial creation
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from meterwatch.models import Shift, TariffSchedule
from meterwatch.services.tariff import DEFAULT_RATE, lookup_rate, resolve_shift


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, tzinfo=UTC)


@pytest.fixture()
def three_shift() -> TariffSchedule:
    return TariffSchedule(
        shifts={
            "A": Shift(start=6, end=18, rate=7.0),
            "B": Shift(start=18, end=22, rate=10.0),
            "C": Shift(start=22, end=6, rate=5.0),
        }
    )


class TestResolveShift:
    """Shift B has priority, C wraps past midnight, A is the fallback."""

    @pytest.mark.parametrize(
        ("hour", "expected"),
        [(6, "A"), (17, "A"), (18, "B"), (21, "B"), (22, "C"), (23, "C"), (0, "C"), (5, "C")],
    )
    def test_shift_boundaries(self, three_shift: TariffSchedule, hour: int, expected: str) -> None:
        assert resolve_shift(three_shift, _at(hour)) == expected

    def test_b_does_not_wrap(self) -> None:
        tariff = TariffSchedule(shifts={"B": Shift(start=22, end=2, rate=10.0)})
        assert resolve_shift(tariff, _at(23)) == "A"
        assert resolve_shift(tariff, _at(1)) == "A"

    def test_c_without_wrap(self) -> None:
        tariff = TariffSchedule(shifts={"C": Shift(start=1, end=5, rate=4.0)})
        assert resolve_shift(tariff, _at(0)) == "A"
        assert resolve_shift(tariff, _at(1)) == "C"
        assert resolve_shift(tariff, _at(5)) == "A"

    def test_b_wins_over_overlapping_c(self) -> None:
        tariff = TariffSchedule(
            shifts={"B": Shift(start=20, end=23, rate=10.0), "C": Shift(start=21, end=4, rate=5.0)}
        )
        assert resolve_shift(tariff, _at(22)) == "B"
        assert resolve_shift(tariff, _at(23)) == "C"

    def test_unconfigured_shift_is_ignored(self) -> None:
        tariff = TariffSchedule(shifts={"B": Shift(start=None, end=22, rate=10.0)})
        assert resolve_shift(tariff, _at(20)) == "A"

    def test_hour_uses_billing_timezone(self, three_shift: TariffSchedule) -> None:
        # 13:00 UTC is 18:30 in Kolkata.
        ts = _at(13)
        assert resolve_shift(three_shift, ts) == "A"
        assert resolve_shift(three_shift, ts, tz=ZoneInfo("Asia/Kolkata")) == "B"


class TestLookupRate:
    def test_rates_follow_shift(self, three_shift: TariffSchedule) -> None:
        assert lookup_rate(three_shift, _at(10)) == 7.0
        assert lookup_rate(three_shift, _at(19)) == 10.0
        assert lookup_rate(three_shift, _at(2)) == 5.0

    def test_empty_schedule_uses_default(self) -> None:
        assert lookup_rate(TariffSchedule(), _at(10)) == DEFAULT_RATE
        assert lookup_rate(TariffSchedule(), _at(10), default_rate=6.25) == 6.25

    def test_a_without_rate_uses_default(self) -> None:
        tariff = TariffSchedule(shifts={"A": Shift(start=0, end=24)})
        assert lookup_rate(tariff, _at(10), default_rate=8.0) == 8.0

    def test_configured_shift_without_rate_uses_shift_default(self) -> None:
        tariff = TariffSchedule(
            shifts={"B": Shift(start=18, end=22), "C": Shift(start=22, end=6)}
        )
        assert lookup_rate(tariff, _at(19)) == 9.5
        assert lookup_rate(tariff, _at(3)) == 5.5
