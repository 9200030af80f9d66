"""
POST /v1/telemetry endpoint for single-reading ingestion.

Accepts one flat JSON reading, runs it through the ingestion coordinator
and reports the outcome. Validation failures return 422 with a
machine-readable ``reason``; storage failures return 503 so the device
retries. Duplicates are accepted and flagged.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from meterwatch.api.deps import get_coordinator
from meterwatch.errors import PersistenceError, ReadingValidationError
from meterwatch.services.ingestion import IngestionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["ingest"])


def _rejection(reason: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": detail, "reason": reason})


@router.post("/telemetry", response_model=None)
async def ingest_telemetry(
    request: Request,
    coordinator: Annotated[IngestionCoordinator, Depends(get_coordinator)],
) -> dict[str, Any] | JSONResponse:
    """Ingest one telemetry reading.

    Returns:
        dict: ``{"status": "accepted", ...}`` with the ingestion result.

    Raises:
        HTTPException: 503 if the reading could not be stored.
    """
    body = await request.body()
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _rejection("invalid_json", "Request body is not valid JSON")

    try:
        result = await coordinator.ingest(payload)
    except ReadingValidationError as exc:
        return _rejection(exc.reason, exc.detail)
    except PersistenceError:
        raise HTTPException(
            status_code=503,
            detail="Telemetry store unavailable, retry later.",
        ) from None

    return {"status": "accepted", **result.to_dict()}
