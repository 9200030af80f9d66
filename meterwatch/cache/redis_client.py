"""
Redis client for the realtime cache and live pub/sub channel.

Provides helpers for creating Redis connections, caching the latest
normalized reading per device, reading it back, and publishing readings on
a per-device channel. Every helper is best-effort: connection failures are
logged but do not propagate, so ingestion is never blocked by cache
infrastructure.

CHANGELOG:
- 2026-10-18: Add publish_reading and get_cached_reading
- 2026-10-18: Initial creation

TODO:
- None
"""

import json
import logging
import os
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)

REALTIME_KEY = "realtime:{device_id}"
TELEMETRY_CHANNEL = "telemetry:{device_id}"


def _get_redis_url(url: str | None = None) -> str:
    """Return *url* or REDIS_URL from the environment.

    Raises:
        RuntimeError: If neither is set.
    """
    url = url or os.environ.get("REDIS_URL")
    if not url:
        raise RuntimeError("REDIS_URL environment variable is required")
    return url


async def get_redis(url: str | None = None) -> redis.Redis:
    """Create and return an async Redis client.

    Args:
        url: Redis URL; defaults to the REDIS_URL environment variable.

    Returns:
        redis.Redis: Async Redis client.
    """
    return redis.from_url(_get_redis_url(url))


async def cache_latest_reading(
    device_id: str,
    record: dict[str, Any],
    ttl_s: int,
    url: str | None = None,
) -> None:
    """Store *record* as the device's latest reading with a TTL.

    Best-effort: failures are logged and swallowed.
    """
    key = REALTIME_KEY.format(device_id=device_id)
    try:
        client = await get_redis(url)
        try:
            await client.set(key, json.dumps(record), ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis write failed for key %s", key, exc_info=True)


async def get_cached_reading(device_id: str, url: str | None = None) -> dict[str, Any] | None:
    """Return the cached latest reading of a device, or None on miss/failure."""
    key = REALTIME_KEY.format(device_id=device_id)
    try:
        client = await get_redis(url)
        try:
            cached = await client.get(key)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis read failed for key %s, falling back to DB", key, exc_info=True)
        return None
    return json.loads(cached) if cached is not None else None


async def publish_reading(
    device_id: str,
    record: dict[str, Any],
    url: str | None = None,
) -> None:
    """Publish *record* on the device's telemetry channel.

    Best-effort: failures are logged and swallowed.
    """
    channel = TELEMETRY_CHANNEL.format(device_id=device_id)
    try:
        client = await get_redis(url)
        try:
            await client.publish(channel, json.dumps(record))
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis publish failed on channel %s", channel, exc_info=True)
