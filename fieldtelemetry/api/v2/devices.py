"""Device status API endpoints."""

from fastapi import APIRouter, HTTPException, status

from fieldtelemetry.core.deps import DBSession
from fieldtelemetry.schemas.device import DeviceStatusDTO
from fieldtelemetry.services.liveness_service import DeviceService

router = APIRouter()


@router.get("/{device_id}/status", response_model=DeviceStatusDTO)
async def get_device_status(
    device_id: str,
    db: DBSession,
) -> DeviceStatusDTO:
    """Get derived liveness status (online, recent, offline, unknown)."""
    device_service = DeviceService(db)
    result = await device_service.get_status(device_id)

    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device not found",
        )

    return result
