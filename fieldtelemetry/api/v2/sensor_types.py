"""Sensor type catalogue API endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from fieldtelemetry.protocol.sensor_types import SENSOR_TYPES

router = APIRouter()


class SensorTypeDTO(BaseModel):
    """Catalogue entry."""

    code: int
    name: str
    transport: str
    value_names: list[str] = Field([], alias="valueNames")
    units: list[str] = []
    record_width: int = Field(..., alias="recordWidth")

    model_config = {"populate_by_name": True}


@router.get("", response_model=list[SensorTypeDTO])
async def get_sensor_types() -> list[SensorTypeDTO]:
    """Get the sensor type catalogue."""
    return [
        SensorTypeDTO(
            code=int(d.code),
            name=d.name,
            transport=d.transport.value,
            value_names=list(d.value_names),
            units=list(d.units),
            record_width=d.record_width,
        )
        for d in SENSOR_TYPES.values()
    ]
