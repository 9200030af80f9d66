"""
Caching wrapper around a DeviceConfigProvider.

Limits, tariff, owner contact and display name are fetched once per device
and served from memory until :meth:`CachedConfigProvider.invalidate` is
called for that device (or for all devices). Lookup failures are never
cached, and neither is a value whose fetch overlapped an invalidation.

CHANGELOG:
- 2026-10-18: Do not cache values fetched across an invalidation
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from meterwatch.interfaces import DeviceConfigProvider
from meterwatch.models import DeviceLimits, OwnerContact, TariffSchedule

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CachedConfigProvider:
    """DeviceConfigProvider that memoises the wrapped provider per device."""

    def __init__(self, inner: DeviceConfigProvider) -> None:
        self.inner = inner
        self._limits: dict[str, DeviceLimits] = {}
        self._tariffs: dict[str, TariffSchedule] = {}
        self._contacts: dict[str, OwnerContact] = {}
        self._names: dict[str, str] = {}
        self._epoch = 0
        self._generations: dict[str, int] = {}

    async def _cached(
        self,
        cache: dict[str, T],
        device_id: str,
        fetch: Callable[[str], Awaitable[T]],
    ) -> T:
        if device_id in cache:
            return cache[device_id]
        token = self._token(device_id)
        value = await fetch(device_id)
        # An invalidate during the fetch means value may predate the change.
        if self._token(device_id) == token:
            cache[device_id] = value
        return value

    def _token(self, device_id: str) -> tuple[int, int]:
        return (self._epoch, self._generations.get(device_id, 0))

    async def get_limits(self, device_id: str) -> DeviceLimits:
        return await self._cached(self._limits, device_id, self.inner.get_limits)

    async def get_tariff(self, device_id: str) -> TariffSchedule:
        return await self._cached(self._tariffs, device_id, self.inner.get_tariff)

    async def get_owner_contact(self, device_id: str) -> OwnerContact:
        return await self._cached(self._contacts, device_id, self.inner.get_owner_contact)

    async def get_device_name(self, device_id: str) -> str:
        return await self._cached(self._names, device_id, self.inner.get_device_name)

    def invalidate(self, device_id: str | None = None) -> None:
        """Drop cached configuration of *device_id*, or of every device."""
        caches = (self._limits, self._tariffs, self._contacts, self._names)
        if device_id is None:
            for cache in caches:
                cache.clear()
            self._epoch += 1
            logger.info("Device config cache cleared")
            return
        for cache in caches:
            cache.pop(device_id, None)
        self._generations[device_id] = self._generations.get(device_id, 0) + 1
        logger.info("Device config cache invalidated for %s", device_id)
