"""
Ingestion coordinator: one pipeline invocation per incoming reading.

    RECEIVED -> VALIDATED -> PERSISTED -> FANNED_OUT
        \\-> REJECTED        \\-> PERSIST_FAILED

A payload is normalized once, persisted through the TelemetryStore, then
fanned out:

1. Threshold evaluation and alert dispatch, scheduled as a background task
   so a slow notifier never delays ingestion.
2. Live billing tick, inline, under the device's ledger lock.
3. Publish of the broadcast record to every sink.

Only validation and persistence errors reach the caller. A configuration
lookup failure skips evaluation and billing for that reading; the broadcast
still happens. Any other failure in evaluation, dispatch or billing is
logged and only drops that side effect. A reading with zero apparent power
comes from an idle or offline meter and is not evaluated.

A duplicate (device_id, ts) is an idempotent no-op insert: it is reported,
broadcast, and skipped for alerts and billing because the first copy of
the reading already went through them.

CHANGELOG:
- 2026-10-18: Skip evaluation of idle readings; contain tariff lookup errors
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from meterwatch.errors import ConfigLookupError, PersistenceError, ReadingValidationError
from meterwatch.interfaces import BroadcastSink, DeviceConfigProvider, TelemetryStore
from meterwatch.models import Reading
from meterwatch.services.alerts import AlertDispatcher
from meterwatch.services.billing import LiveBillingLedger
from meterwatch.services.normalizer import normalize
from meterwatch.services.thresholds import evaluate

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class IngestState(str, Enum):
    """Pipeline state of one reading."""

    RECEIVED = "received"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    FANNED_OUT = "fanned_out"
    REJECTED = "rejected"
    PERSIST_FAILED = "persist_failed"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a successful ingestion."""

    device_id: str
    ts: datetime
    state: IngestState
    duplicate: bool = False
    billing_applied: bool = False
    alerts_scheduled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "ts": self.ts.isoformat(),
            "state": self.state.value,
            "duplicate": self.duplicate,
            "billing_applied": self.billing_applied,
            "alerts_scheduled": self.alerts_scheduled,
        }


class IngestionCoordinator:
    """Validates, persists and fans out incoming readings.

    Args:
        store: Durable telemetry store.
        config: Device configuration provider (usually cached).
        dispatcher: Alert dispatcher, owning the cooldown state.
        ledger: Live billing ledger, or None to disable live billing.
        sinks: Broadcast sinks receiving every accepted reading.
        clock: Returns the current aware datetime; used when a payload
            carries no timestamp.
    """

    def __init__(
        self,
        store: TelemetryStore,
        config: DeviceConfigProvider,
        dispatcher: AlertDispatcher,
        ledger: LiveBillingLedger | None = None,
        sinks: Iterable[BroadcastSink] = (),
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.sinks = list(sinks)
        self._clock = clock
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, payload: Mapping[str, Any]) -> IngestResult:
        """Run one payload through the pipeline.

        Args:
            payload: Raw decoded JSON object.

        Returns:
            IngestResult: Final state and what was done with the reading.

        Raises:
            ReadingValidationError: Payload rejected; nothing was stored.
            PersistenceError: Storage failed; nothing was fanned out.
        """
        try:
            reading = normalize(payload, received_at=self._clock())
        except ReadingValidationError as exc:
            logger.info("Reading %s: %s", IngestState.REJECTED.value, exc.reason)
            raise

        try:
            inserted = await self.store.append(reading)
        except PersistenceError:
            logger.error(
                "Reading %s for %s", IngestState.PERSIST_FAILED.value, reading.device_id
            )
            raise
        except Exception as exc:
            logger.error(
                "Reading %s for %s",
                IngestState.PERSIST_FAILED.value,
                reading.device_id,
                exc_info=True,
            )
            raise PersistenceError(f"failed to store reading of {reading.device_id}") from exc

        duplicate = not inserted
        alerts_scheduled = False
        billing_applied = False
        if duplicate:
            logger.info(
                "Duplicate reading %s at %s, skipping alerts and billing",
                reading.device_id,
                reading.ts.isoformat(),
            )
        else:
            if reading.apparent_power == 0:
                logger.debug("Idle reading from %s, skipping evaluation", reading.device_id)
            else:
                self._schedule(self._evaluate_and_dispatch(reading))
                alerts_scheduled = True
            billing_applied = await self._apply_billing(reading)

        self._broadcast(reading)

        return IngestResult(
            device_id=reading.device_id,
            ts=reading.ts,
            state=IngestState.FANNED_OUT,
            duplicate=duplicate,
            billing_applied=billing_applied,
            alerts_scheduled=alerts_scheduled,
        )

    async def drain(self) -> None:
        """Wait until every scheduled alert task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Fan-out steps
    # ------------------------------------------------------------------

    def _schedule(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _evaluate_and_dispatch(self, reading: Reading) -> None:
        device_id = reading.device_id
        try:
            limits = await self.config.get_limits(device_id)
            faults = evaluate(reading, limits)
            if not faults:
                return
            contact = await self.config.get_owner_contact(device_id)
            device_name = await self.config.get_device_name(device_id)
        except ConfigLookupError as exc:
            logger.warning("Skipping evaluation for %s: %s", device_id, exc)
            return
        except Exception:
            logger.error("Evaluation failed for %s", device_id, exc_info=True)
            return

        try:
            await self.dispatcher.dispatch(faults, device_id, contact, device_name)
        except Exception:
            logger.error("Alert dispatch failed for %s", device_id, exc_info=True)

    async def _apply_billing(self, reading: Reading) -> bool:
        if self.ledger is None:
            return False
        try:
            tariff = await self.config.get_tariff(reading.device_id)
        except ConfigLookupError as exc:
            logger.warning("Skipping billing for %s: %s", reading.device_id, exc)
            return False
        except Exception:
            logger.error("Tariff lookup failed for %s", reading.device_id, exc_info=True)
            return False
        try:
            state = await self.ledger.apply(reading, tariff)
        except Exception:
            logger.error("Billing tick failed for %s", reading.device_id, exc_info=True)
            return False
        return state is not None

    def _broadcast(self, reading: Reading) -> None:
        record = reading.to_broadcast()
        for sink in self.sinks:
            try:
                sink.publish(reading.device_id, record)
            except Exception:
                logger.warning(
                    "Broadcast sink %s failed for %s",
                    type(sink).__name__,
                    reading.device_id,
                    exc_info=True,
                )
