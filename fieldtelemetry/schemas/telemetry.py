"""Telemetry schemas for API responses."""

from pydantic import BaseModel, Field

from fieldtelemetry.protocol.frame import DecodedFrame, DecodedReading


class ReadingDTO(BaseModel):
    """Decoded sensor reading."""

    sensor_id: int = Field(..., alias="sensorId")
    type_code: int = Field(..., alias="typeCode")
    type_name: str = Field(..., alias="typeName")
    name: str
    transport: str
    position: int
    sub_controller_id: int = Field(0, alias="subControllerId")
    active: bool = True
    values: list[float] = []
    value_names: list[str] = Field([], alias="valueNames")
    texts: dict[str, str] = {}

    model_config = {"populate_by_name": True}

    @classmethod
    def from_reading(cls, reading: DecodedReading) -> "ReadingDTO":
        return cls(
            sensor_id=reading.sensor_id,
            type_code=reading.type_code,
            type_name=reading.type_name,
            name=reading.name,
            transport=reading.transport.value,
            position=reading.position,
            sub_controller_id=reading.sub_controller_id,
            active=reading.active,
            values=list(reading.values),
            value_names=list(reading.value_names),
            texts=dict(reading.texts),
        )


class FrameDTO(BaseModel):
    """All readings from one frame."""

    device_id: str = Field(..., alias="deviceId")
    captured_at: int = Field(..., alias="capturedAt")  # Unix ms
    sensor_count: int = Field(0, alias="sensorCount")
    transport_counts: dict[str, int] = Field({}, alias="transportCounts")
    readings: list[ReadingDTO] = []

    model_config = {"populate_by_name": True}

    @classmethod
    def from_frame(cls, device_id: str, frame: DecodedFrame) -> "FrameDTO":
        return cls(
            device_id=device_id,
            captured_at=frame.received_at,
            sensor_count=len(frame.readings),
            transport_counts=frame.transport_counts,
            readings=[ReadingDTO.from_reading(r) for r in frame.readings],
        )


class TelemetryHistoryResponse(BaseModel):
    """Telemetry history response."""

    device_id: str = Field(..., alias="deviceId")
    count: int
    items: list[FrameDTO] = []

    model_config = {"populate_by_name": True}
