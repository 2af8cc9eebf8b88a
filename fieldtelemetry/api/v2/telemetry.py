"""Telemetry API endpoints."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from fieldtelemetry.core.deps import DBSession, StateStore
from fieldtelemetry.protocol.sensor_types import Transport
from fieldtelemetry.schemas.telemetry import FrameDTO, TelemetryHistoryResponse
from fieldtelemetry.services.ingest_service import get_ingest_service
from fieldtelemetry.services.state_store import LATEST_FRAME_KEY
from fieldtelemetry.services.telemetry_service import TelemetryService

router = APIRouter()


@router.get("/stats")
async def get_ingest_stats() -> dict:
    """Get frame counters of the running ingest pipeline."""
    ingest = get_ingest_service()
    if ingest is None:
        return {"running": False}
    return {"running": True, **ingest.stats.as_dict()}


@router.get("/{device_id}/latest", response_model=FrameDTO)
async def get_latest_telemetry(
    device_id: str,
    db: DBSession,
    store: StateStore,
) -> FrameDTO:
    """
    Get the latest decoded frame of a device.

    Served from the in-memory cache when the frame arrived since startup,
    otherwise from the newest stored row.
    """
    frame = await store.get(device_id, LATEST_FRAME_KEY)
    if frame is not None:
        return FrameDTO.from_frame(device_id, frame)

    telemetry_service = TelemetryService(db)
    result = await telemetry_service.get_latest(device_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No telemetry for device",
        )
    return result


@router.get("/{device_id}/history", response_model=TelemetryHistoryResponse)
async def get_telemetry_history(
    device_id: str,
    db: DBSession,
    hours: int = Query(24, ge=1, le=24 * 31),
    limit: int = Query(100, ge=1, le=10000),
    start: datetime | None = None,
    end: datetime | None = None,
    transport: Transport | None = None,
) -> TelemetryHistoryResponse:
    """
    Get decoded telemetry history, newest first.

    - **hours**: Look-back window when no start/end is given
    - **limit**: Maximum number of frames
    - **start** / **end**: Explicit time range
    - **transport**: Only readings from `direct` or `bus` sensors
    """
    telemetry_service = TelemetryService(db)
    return await telemetry_service.get_history(
        device_id,
        hours=hours,
        start=start,
        end=end,
        limit=limit,
        transport=transport,
    )
