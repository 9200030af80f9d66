"""
GET /v1/realtime endpoint for retrieving a device's latest reading.

Reads the ``realtime:{device_id}`` Redis key written by the broadcast sink
on every accepted reading. On cache miss or Redis failure it falls back to
the newest row in the telemetry table and re-populates the cache.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from meterwatch.api.deps import get_db, get_settings
from meterwatch.cache.redis_client import cache_latest_reading, get_cached_reading
from meterwatch.config import Settings
from meterwatch.db.models import TelemetrySample
from meterwatch.db.repository import sample_to_reading

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["realtime"])


@router.get("/realtime")
async def realtime(
    device_id: Annotated[str, Query(min_length=1)],
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict[str, Any]:
    """Return the most recent reading of a device.

    Raises:
        HTTPException: 404 if no data exists for the device.
    """
    cached = await get_cached_reading(device_id, url=settings.redis_url)
    if cached is not None:
        return cached

    stmt = (
        select(TelemetrySample)
        .where(TelemetrySample.device_id == device_id)
        .order_by(TelemetrySample.ts.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    sample = result.scalar_one_or_none()

    if sample is None:
        raise HTTPException(
            status_code=404,
            detail=f"No data found for device_id '{device_id}'.",
        )

    record = sample_to_reading(sample).to_broadcast()
    await cache_latest_reading(
        device_id, record, settings.realtime_cache_ttl_s, url=settings.redis_url
    )
    return record
