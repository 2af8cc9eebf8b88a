"""Pydantic schemas for API request/response validation."""

from fieldtelemetry.schemas.alert import AlertLogDTO, AlertRuleCreate, AlertRuleDTO
from fieldtelemetry.schemas.device import DeviceStatusDTO
from fieldtelemetry.schemas.notification import (
    AlimtalkMessage,
    NotificationButton,
    NotificationRequest,
)
from fieldtelemetry.schemas.telemetry import FrameDTO, ReadingDTO, TelemetryHistoryResponse

__all__ = [
    # Alert
    "AlertLogDTO",
    "AlertRuleCreate",
    "AlertRuleDTO",
    # Device
    "DeviceStatusDTO",
    # Notification
    "AlimtalkMessage",
    "NotificationButton",
    "NotificationRequest",
    # Telemetry
    "FrameDTO",
    "ReadingDTO",
    "TelemetryHistoryResponse",
]
