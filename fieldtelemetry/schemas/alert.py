"""Alert rule and alert log schemas for API request/response."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AlertRuleCreate(BaseModel):
    """Alert rule create/update schema; an id updates the existing rule."""

    id: int | None = None
    sensor_type: int = Field(..., alias="sensorType")
    sensor_name: str = Field(..., alias="sensorName", description="Reading name, e.g. SHT20_CH1")
    value_index: int = Field(0, alias="valueIndex", ge=0)
    condition_type: Literal["above", "below"] = Field(..., alias="conditionType")
    threshold_value: float = Field(..., alias="thresholdValue")
    is_active: bool = Field(True, alias="isActive")

    model_config = {"populate_by_name": True}


class AlertRuleDTO(BaseModel):
    """Alert rule response schema."""

    id: int
    device_id: str = Field(..., alias="deviceId")
    sensor_type: int = Field(..., alias="sensorType")
    sensor_name: str = Field(..., alias="sensorName")
    value_index: int = Field(..., alias="valueIndex")
    condition_type: str = Field(..., alias="conditionType")
    threshold_value: float = Field(..., alias="thresholdValue")
    is_active: bool = Field(..., alias="isActive")
    current_state: str = Field("normal", alias="currentState")
    last_alert_time: datetime | None = Field(None, alias="lastAlertTime")
    last_sensor_value: float | None = Field(None, alias="lastSensorValue")

    model_config = {"populate_by_name": True, "from_attributes": True}


class AlertLogDTO(BaseModel):
    """Alert log response schema."""

    id: int
    device_id: str = Field(..., alias="deviceId")
    sensor_type: int = Field(..., alias="sensorType")
    sensor_name: str = Field(..., alias="sensorName")
    value_index: int = Field(..., alias="valueIndex")
    event_type: str = Field(..., alias="eventType")
    condition_type: str = Field(..., alias="conditionType")
    sensor_value: float = Field(..., alias="sensorValue")
    threshold_value: float = Field(..., alias="thresholdValue")
    message: str | None = None
    created_at: datetime | None = Field(None, alias="createdAt")

    model_config = {"populate_by_name": True, "from_attributes": True}
