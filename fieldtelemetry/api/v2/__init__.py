"""API v2 router initialization."""

from fastapi import APIRouter

from fieldtelemetry.api.v2.alerts import router as alerts_router
from fieldtelemetry.api.v2.devices import router as devices_router
from fieldtelemetry.api.v2.sensor_types import router as sensor_types_router
from fieldtelemetry.api.v2.telemetry import router as telemetry_router

router = APIRouter()

router.include_router(telemetry_router, prefix="/telemetry", tags=["Telemetry"])
router.include_router(devices_router, prefix="/devices", tags=["Devices"])
router.include_router(alerts_router, prefix="/alerts", tags=["Alerts"])
router.include_router(sensor_types_router, prefix="/sensor-types", tags=["Sensor Types"])
