"""
FastAPI application entry point for the meterwatch API.

The lifespan loads Settings, configures logging, and wires the pipeline:
SQL adapters over one async session factory, a cached device config
provider, the alert dispatcher with its cooldown store, the live billing
ledger, the in-process broadcast hub and the Redis sink. Everything is
stored on ``app.state`` for the dependency providers in meterwatch.api.deps.

Shutdown waits for in-flight alert tasks and Redis writes before the
database engine is disposed.

CHANGELOG:
- 2026-10-18: Register billing, devices and stream routers
- 2026-10-18: Initial creation
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from meterwatch.api.billing import router as billing_router
from meterwatch.api.devices import router as devices_router
from meterwatch.api.health import router as health_router
from meterwatch.api.ingest import router as ingest_router
from meterwatch.api.realtime import router as realtime_router
from meterwatch.api.stream import router as stream_router
from meterwatch.config import Settings
from meterwatch.db.repository import SqlDeviceConfigProvider, SqlFaultLog, SqlTelemetryStore
from meterwatch.db.session import dispose_engine, init_engine
from meterwatch.interfaces import Notifier
from meterwatch.logging_config import configure_logging, log_config_summary
from meterwatch.services.alerts import AlertDispatcher, CooldownStore
from meterwatch.services.billing import BillingCalculator, LiveBillingLedger
from meterwatch.services.broadcast import BroadcastHub, RedisBroadcastSink
from meterwatch.services.device_config import CachedConfigProvider
from meterwatch.services.ingestion import IngestionCoordinator
from meterwatch.services.notifier import HttpNotifier, LoggingNotifier

logger = logging.getLogger(__name__)


def _build_notifier(settings: Settings) -> Notifier:
    if settings.notifier_url:
        return HttpNotifier(
            settings.notifier_url,
            token=settings.notifier_token,
            timeout_s=settings.notifier_timeout_s,
        )
    logger.warning("NOTIFIER_URL not set, alert notices will only be logged")
    return LoggingNotifier()


def wire_services(app: FastAPI, settings: Settings) -> None:
    """Build the pipeline from *settings* and attach it to ``app.state``."""
    session_factory = init_engine(settings.database_url)

    store = SqlTelemetryStore(session_factory)
    config_provider = CachedConfigProvider(SqlDeviceConfigProvider(session_factory))
    dispatcher = AlertDispatcher(
        _build_notifier(settings),
        SqlFaultLog(session_factory),
        CooldownStore(),
        cooldown=settings.cooldown,
        silent_plans=settings.silent_plans,
    )
    calculator = BillingCalculator(
        tz=settings.tz,
        duration_cap_h=settings.duration_cap_h,
        default_rate=settings.default_rate,
    )
    ledger = LiveBillingLedger(calculator, auto_open=settings.live_billing_auto_open)
    hub = BroadcastHub(queue_size=settings.broadcast_queue_size)
    redis_sink = RedisBroadcastSink(settings.redis_url, cache_ttl_s=settings.realtime_cache_ttl_s)

    app.state.settings = settings
    app.state.store = store
    app.state.config_provider = config_provider
    app.state.calculator = calculator
    app.state.ledger = ledger
    app.state.hub = hub
    app.state.redis_sink = redis_sink
    app.state.coordinator = IngestionCoordinator(
        store,
        config_provider,
        dispatcher,
        ledger,
        sinks=[hub, redis_sink],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire services on startup, drain on shutdown."""
    settings = Settings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    wire_services(app, settings)
    logger.info("Meterwatch API ready")
    yield

    logger.info("Meterwatch API shutting down")
    await app.state.coordinator.drain()
    await app.state.redis_sink.drain()
    await dispose_engine()


app = FastAPI(
    title="Meterwatch API",
    description="Electrical telemetry ingestion, alerting and time-of-use billing.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(realtime_router)
app.include_router(billing_router)
app.include_router(devices_router)
app.include_router(stream_router)


@app.get("/")
async def root() -> dict:
    """Root health check endpoint."""
    return {"status": "ok"}
