"""Background workers for scheduled tasks and message processing."""

from fieldtelemetry.workers.liveness_sweep import LivenessSweepWorker
from fieldtelemetry.workers.notification_worker import AlimtalkSender, NotificationWorker
from fieldtelemetry.workers.telemetry_subscriber import TelemetrySubscriber

__all__ = [
    "AlimtalkSender",
    "LivenessSweepWorker",
    "NotificationWorker",
    "TelemetrySubscriber",
]
