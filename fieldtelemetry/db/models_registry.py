"""
Model registry.

Import all models here to ensure they are registered with SQLAlchemy metadata
before ``Base.metadata.create_all`` runs.
"""

from fieldtelemetry.db.base import Base
from fieldtelemetry.models.alert import AlertLog, AlertRule
from fieldtelemetry.models.device import Device, DeviceStatusLog
from fieldtelemetry.models.telemetry import SensorData

__all__ = [
    "Base",
    "AlertLog",
    "AlertRule",
    "Device",
    "DeviceStatusLog",
    "SensorData",
]
