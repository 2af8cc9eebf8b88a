"""Service layer for business logic."""

from fieldtelemetry.services.alert_service import AlertEvaluator, AlertService
from fieldtelemetry.services.ingest_service import TelemetryIngestService
from fieldtelemetry.services.liveness_service import DeviceService, LivenessTracker
from fieldtelemetry.services.state_store import InMemoryStateStore, get_state_store
from fieldtelemetry.services.telemetry_service import TelemetryService

__all__ = [
    "AlertEvaluator",
    "AlertService",
    "DeviceService",
    "InMemoryStateStore",
    "LivenessTracker",
    "TelemetryIngestService",
    "TelemetryService",
    "get_state_store",
]
