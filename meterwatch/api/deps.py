"""
FastAPI dependency injection providers.

Provides database sessions and the pipeline services built at startup
(stored on ``app.state`` by the lifespan in meterwatch.api.main). Tests
replace any of these through ``app.dependency_overrides``.

CHANGELOG:
- 2026-10-18: Pipeline service providers
- 2026-10-18: Initial creation
"""

from collections.abc import AsyncGenerator

from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession

from meterwatch.config import Settings
from meterwatch.db.session import get_async_session
from meterwatch.interfaces import TelemetryStore
from meterwatch.services.billing import BillingCalculator, LiveBillingLedger
from meterwatch.services.broadcast import BroadcastHub
from meterwatch.services.device_config import CachedConfigProvider
from meterwatch.services.ingestion import IngestionCoordinator


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    async for session in get_async_session():
        yield session


def get_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


def get_coordinator(conn: HTTPConnection) -> IngestionCoordinator:
    return conn.app.state.coordinator


def get_store(conn: HTTPConnection) -> TelemetryStore:
    return conn.app.state.store


def get_config_provider(conn: HTTPConnection) -> CachedConfigProvider:
    return conn.app.state.config_provider


def get_calculator(conn: HTTPConnection) -> BillingCalculator:
    return conn.app.state.calculator


def get_ledger(conn: HTTPConnection) -> LiveBillingLedger:
    return conn.app.state.ledger


def get_hub(conn: HTTPConnection) -> BroadcastHub:
    return conn.app.state.hub
