"""
Interfaces of the collaborators the pipeline talks to.

The coordinator, dispatcher and billing ledger depend only on these
protocols. Concrete adapters live in ``meterwatch.db.repository``,
``meterwatch.services.notifier`` and ``meterwatch.services.broadcast``;
tests substitute in-memory fakes.

CHANGELOG:
- 2026-10-18: Initial creation
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Protocol

from meterwatch.models import DeviceLimits, FaultEvent, OwnerContact, Reading, TariffSchedule


class TelemetryStore(Protocol):
    """Durable store for readings."""

    async def append(self, reading: Reading) -> bool:
        """Persist *reading*; return False if (device_id, ts) already existed.

        Raises:
            PersistenceError: If the write failed.
        """
        ...

    async def query_range(
        self,
        start: datetime,
        end: datetime,
        device_id: str | None = None,
    ) -> list[Reading]: ...

    async def query_recent(
        self,
        window: timedelta,
        device_id: str | None = None,
    ) -> list[Reading]: ...


class FaultLog(Protocol):
    """Sink for every fault event, notified or not."""

    async def append(self, event: FaultEvent) -> None: ...


class DeviceConfigProvider(Protocol):
    """Read-only access to device configuration.

    Every method raises ConfigLookupError when the device is unknown or the
    backing store is unavailable.
    """

    async def get_limits(self, device_id: str) -> DeviceLimits: ...

    async def get_tariff(self, device_id: str) -> TariffSchedule: ...

    async def get_owner_contact(self, device_id: str) -> OwnerContact: ...

    async def get_device_name(self, device_id: str) -> str: ...


class Notifier(Protocol):
    """Outbound notification channel (email or equivalent)."""

    async def send(self, contact: OwnerContact, subject: str, body: str) -> bool: ...


class BroadcastSink(Protocol):
    """Fire-and-forget fan-out to live subscribers. Must never block."""

    def publish(self, device_id: str, record: dict[str, Any]) -> None: ...
