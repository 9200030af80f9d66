"""
Tests for the Redis cache helpers.

CHANGELOG:
- 2026-10-18: Initial creation
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from meterwatch.cache.redis_client import (
    _get_redis_url,
    cache_latest_reading,
    get_cached_reading,
    publish_reading,
)


class TestRedisUrl:
    def test_explicit_url_wins(self) -> None:
        assert _get_redis_url("redis://cache:6379/1") == "redis://cache:6379/1"

    def test_falls_back_to_env(self) -> None:
        assert _get_redis_url() == "redis://localhost:6379/0"

    def test_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL")
        with pytest.raises(RuntimeError, match="REDIS_URL"):
            _get_redis_url()


class TestHelpers:
    @pytest.mark.asyncio
    async def test_cache_hit(self, mock_redis: AsyncMock) -> None:
        mock_redis.get = AsyncMock(return_value=json.dumps({"device_id": "dev-1"}).encode())
        with patch(
            "meterwatch.cache.redis_client.get_redis",
            new_callable=AsyncMock,
            return_value=mock_redis,
        ):
            assert await get_cached_reading("dev-1") == {"device_id": "dev-1"}
        mock_redis.get.assert_awaited_once_with("realtime:dev-1")
        mock_redis.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_miss(self, mock_redis: AsyncMock) -> None:
        with patch(
            "meterwatch.cache.redis_client.get_redis",
            new_callable=AsyncMock,
            return_value=mock_redis,
        ):
            assert await get_cached_reading("dev-1") is None

    @pytest.mark.asyncio
    async def test_read_failure_returns_none(self) -> None:
        with patch(
            "meterwatch.cache.redis_client.get_redis",
            new_callable=AsyncMock,
            side_effect=ConnectionError("refused"),
        ):
            assert await get_cached_reading("dev-1") is None

    @pytest.mark.asyncio
    async def test_write_and_publish_close_client(self, mock_redis: AsyncMock) -> None:
        mock_redis.set = AsyncMock(side_effect=ConnectionError("reset"))
        with patch(
            "meterwatch.cache.redis_client.get_redis",
            new_callable=AsyncMock,
            return_value=mock_redis,
        ):
            await cache_latest_reading("dev-1", {"n": 1}, ttl_s=5)
            await publish_reading("dev-1", {"n": 1})

        assert mock_redis.aclose.await_count == 2
        mock_redis.publish.assert_awaited_once_with("telemetry:dev-1", json.dumps({"n": 1}))
