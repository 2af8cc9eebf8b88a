"""Device status schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class DeviceStatusDTO(BaseModel):
    """Derived device liveness status."""

    device_id: str = Field(..., alias="deviceId")
    device_name: str | None = Field(None, alias="deviceName")
    status: str  # online | recent | offline | unknown
    last_seen_at: datetime | None = Field(None, alias="lastSeenAt")
    minutes_since_seen: float | None = Field(None, alias="minutesSinceSeen")

    model_config = {"populate_by_name": True}
