"""
Alert dispatcher: fault events -> fault log records + cooldown-gated notices.

Logging and notification are independent concerns. Every fault is appended
to the fault log. Only the priority fault of a call may notify, and only
when the owner's plan allows alerts, alerts are enabled, an address is
known, and no notice for the same device and fault type went out within the
cooldown window.

Alerting is best-effort. Fault log and notifier failures are logged and
never propagate to the ingestion that triggered them.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta

from meterwatch.interfaces import FaultLog, Notifier
from meterwatch.models import FaultEvent, OwnerContact, Severity
from meterwatch.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=15)
DEFAULT_SILENT_PLANS: frozenset[str] = frozenset({"free", "essential"})

_PRIORITY_SEVERITIES = (Severity.CRITICAL, Severity.DANGER)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def cooldown_key(device_id: str, fault: FaultEvent) -> str:
    """Return the cooldown key ``"{device_id}:{fault_type}"``."""
    return f"{device_id}:{fault.type.value}"


def select_priority_fault(faults: Sequence[FaultEvent]) -> FaultEvent | None:
    """Pick the fault that may trigger a notification.

    The first CRITICAL or DANGER fault wins; otherwise the first fault.
    """
    for fault in faults:
        if fault.severity in _PRIORITY_SEVERITIES:
            return fault
    return faults[0] if faults else None


def format_alert(fault: FaultEvent, device_name: str) -> tuple[str, str]:
    """Build the (subject, body) pair for a fault notification."""
    subject = f"[{fault.severity.value}] {fault.type.value} Alert: {device_name}"
    body = (
        f"{fault.message}\n\n"
        f"Device: {device_name} ({fault.device_id})\n"
        f"Observed: {fault.value:.2f}\n"
        f"Threshold: {fault.threshold:.2f}\n"
        f"Time: {fault.ts.isoformat()}\n"
    )
    return subject, body


class CooldownStore:
    """Last-notified timestamps keyed by ``device_id:fault_type``.

    Held in memory only. After a restart it is empty, so at most one
    duplicate notice per key can follow a restart.
    """

    def __init__(self) -> None:
        self._last: dict[str, datetime] = {}
        self.locks = KeyedLocks()

    def get(self, key: str) -> datetime | None:
        return self._last.get(key)

    def record(self, key: str, when: datetime) -> None:
        self._last[key] = when

    def is_cooling(self, key: str, now: datetime, window: timedelta) -> bool:
        last = self._last.get(key)
        return last is not None and now - last < window

    def __len__(self) -> int:
        return len(self._last)


class AlertDispatcher:
    """Turns fault events into log records and rate-limited notifications.

    Args:
        notifier: Outbound channel for notices.
        fault_log: Sink receiving every fault event.
        cooldowns: Shared cooldown store, owned by the coordinator.
        cooldown: Minimum interval between notices for the same key.
        silent_plans: Subscription plans that never get notices.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        notifier: Notifier,
        fault_log: FaultLog,
        cooldowns: CooldownStore | None = None,
        *,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        silent_plans: Iterable[str] = DEFAULT_SILENT_PLANS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.notifier = notifier
        self.fault_log = fault_log
        self.cooldowns = cooldowns if cooldowns is not None else CooldownStore()
        self.cooldown = cooldown
        self.silent_plans = frozenset(p.lower() for p in silent_plans)
        self._clock = clock

    async def dispatch(
        self,
        faults: Sequence[FaultEvent],
        device_id: str,
        contact: OwnerContact,
        device_name: str | None = None,
    ) -> None:
        """Log all faults and notify about the priority fault if allowed.

        Args:
            faults: Fault events of one reading, in evaluator order.
            device_id: Device the faults were raised for.
            contact: The owning tenant's alert preference.
            device_name: Display name used in the notice subject.
        """
        if not faults:
            return

        await self._log_faults(faults)

        priority = select_priority_fault(faults)
        assert priority is not None
        logger.warning(
            "%s on %s (%d fault(s) in reading)",
            priority.type.value,
            device_id,
            len(faults),
        )

        if contact.plan.lower() in self.silent_plans:
            logger.debug("Plan '%s' has no alerts, skipping notice for %s", contact.plan, device_id)
            return
        if not contact.alerts_enabled or not contact.email:
            logger.debug("Alerts disabled or no address for %s, skipping notice", device_id)
            return

        await self._notify(priority, device_id, contact, device_name or device_id)

    async def _log_faults(self, faults: Sequence[FaultEvent]) -> None:
        for fault in faults:
            try:
                await self.fault_log.append(fault)
            except Exception:
                logger.error(
                    "Failed to log %s fault for device %s",
                    fault.type.value,
                    fault.device_id,
                    exc_info=True,
                )

    async def _notify(
        self,
        fault: FaultEvent,
        device_id: str,
        contact: OwnerContact,
        device_name: str,
    ) -> None:
        key = cooldown_key(device_id, fault)

        # Check, send and record under one lock so concurrent readings of the
        # same device and fault type produce a single notice.
        async with self.cooldowns.locks(key):
            now = self._clock()
            if self.cooldowns.is_cooling(key, now, self.cooldown):
                logger.info("Notice for %s suppressed by cooldown", key)
                return

            subject, body = format_alert(fault, device_name)
            try:
                delivered = await self.notifier.send(contact, subject, body)
            except Exception:
                logger.error("Notifier failed for %s", key, exc_info=True)
                return

            if not delivered:
                logger.error("Notifier reported failure for %s", key)
                return

            self.cooldowns.record(key, now)
            logger.info("Notice sent for %s", key)
