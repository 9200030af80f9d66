"""
Health check endpoint for the meterwatch API.

Provides a simple GET /health endpoint that returns {"status": "ok"} with
HTTP 200. Intended for container health checks and internal monitoring.

CHANGELOG:
- 2026-10-18: Report live subscriber and pending alert task counts
- 2026-10-18: Initial creation

TODO:
- None
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from meterwatch.api.deps import get_coordinator, get_hub
from meterwatch.services.broadcast import BroadcastHub
from meterwatch.services.ingestion import IngestionCoordinator

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    hub: Annotated[BroadcastHub, Depends(get_hub)],
    coordinator: Annotated[IngestionCoordinator, Depends(get_coordinator)],
) -> dict[str, Any]:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok"}`` plus live subscriber and pending alert
        task counts.
    """
    return {
        "status": "ok",
        "subscribers": hub.subscriber_count,
        "pending_alerts": coordinator.pending_tasks,
    }
