"""
POST /v1/devices/{device_id}/config/invalidate endpoint.

Called by the device management service after it changes a device's
thresholds, tariff or owner so that the next reading is evaluated against
fresh configuration.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from meterwatch.api.deps import get_config_provider
from meterwatch.services.device_config import CachedConfigProvider

router = APIRouter(prefix="/v1/devices", tags=["devices"])


@router.post("/{device_id}/config/invalidate", status_code=204)
async def invalidate_device_config(
    device_id: str,
    config: Annotated[CachedConfigProvider, Depends(get_config_provider)],
) -> Response:
    """Drop the cached configuration of one device."""
    config.invalidate(device_id)
    return Response(status_code=204)
