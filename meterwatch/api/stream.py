"""
WS /v1/stream endpoint pushing normalized readings to live subscribers.

Each connection subscribes to the in-process broadcast hub, optionally
filtered by ``device_id``, and receives one JSON message per accepted
reading. Slow clients lose the oldest queued readings instead of slowing
down ingestion.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from meterwatch.api.deps import get_hub
from meterwatch.services.broadcast import BroadcastHub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["stream"])


@router.websocket("/stream")
async def stream(
    websocket: WebSocket,
    hub: Annotated[BroadcastHub, Depends(get_hub)],
    device_id: Annotated[str | None, Query()] = None,
) -> None:
    with hub.subscribe(device_id) as subscription:
        await websocket.accept()
        try:
            while True:
                record = await subscription.get()
                await websocket.send_json(record)
        except WebSocketDisconnect:
            logger.info("Live subscriber disconnected (device=%s)", device_id)
