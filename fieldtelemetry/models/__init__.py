"""Database models."""

from fieldtelemetry.models.alert import AlertLog, AlertRule
from fieldtelemetry.models.device import Device, DeviceStatusLog
from fieldtelemetry.models.telemetry import SensorData

__all__ = [
    "AlertLog",
    "AlertRule",
    "Device",
    "DeviceStatusLog",
    "SensorData",
]
