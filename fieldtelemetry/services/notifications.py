"""Owner notifications: message templates and the outbound sink interface.

Renders alert, recovery, online and offline messages into one
NotificationRequest per recipient. Template ids match the templates
registered with the messaging gateway.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

from loguru import logger

from fieldtelemetry.core.config import Settings, get_settings
from fieldtelemetry.models.device import Device
from fieldtelemetry.protocol.sensor_types import get_descriptor
from fieldtelemetry.schemas.notification import NotificationButton, NotificationRequest

if TYPE_CHECKING:
    from fieldtelemetry.services.alert_service import AlertTransition
    from fieldtelemetry.services.liveness_service import LivenessTransition

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class DeviceContext:
    """Device details used to address and render notifications."""

    device_id: str
    device_name: str | None = None
    device_location: str | None = None
    owner_name: str | None = None
    recipients: list[str] = field(default_factory=list)

    @classmethod
    def from_model(cls, device: Device) -> "DeviceContext":
        return cls(
            device_id=device.device_id,
            device_name=device.device_name,
            device_location=device.device_location,
            owner_name=device.owner_name,
            recipients=device.get_recipients(),
        )

    @property
    def display_name(self) -> str:
        return self.device_name or self.device_id

    @property
    def location(self) -> str:
        return self.device_location or "-"


def _format_value(value: float) -> str:
    return f"{value:g}"


def value_label(sensor_type: int, sensor_name: str, value_index: int) -> tuple[str, str]:
    """Return (label, unit) for one value of a sensor, e.g. ("SHT20_CH1 - temperature", "°C")."""
    descriptor = get_descriptor(sensor_type)
    if 0 <= value_index < descriptor.value_count:
        name = descriptor.value_names[value_index]
    else:
        name = "value"
    return f"{sensor_name} - {name}", descriptor.unit(value_index)


def _fan_out(
    ctx: DeviceContext,
    template_id: str,
    title: str,
    body: str,
    kind: str,
    buttons: list[NotificationButton] | None = None,
) -> list[NotificationRequest]:
    return [
        NotificationRequest(
            recipient=recipient,
            template_id=template_id,
            title=title,
            body=body,
            device_id=ctx.device_id,
            device_name=ctx.device_name,
            device_location=ctx.device_location,
            kind=kind,
            buttons=buttons or [],
        )
        for recipient in ctx.recipients
    ]


def render_alert(
    ctx: DeviceContext,
    transition: "AlertTransition",
    settings: Settings | None = None,
) -> list[NotificationRequest]:
    """Render an alert or recovery message for every recipient."""
    settings = settings or get_settings()
    label, unit = value_label(
        transition.sensor_type, transition.sensor_name, transition.value_index
    )
    current = f"{_format_value(transition.sensor_value)}{unit}"
    threshold = f"{_format_value(transition.threshold_value)}{unit}"
    timestamp = transition.occurred_at.strftime(TIME_FORMAT)

    if transition.event_type == "alert":
        body = (
            f"{settings.system_label} {ctx.display_name} threshold alert\n\n"
            f"Location: {ctx.location}\n"
            f"Current reading: {label} {current}\n"
            f"Threshold: {threshold}\n"
            f"Time: {timestamp}\n\n"
            "You will be notified again when the reading returns to the normal range."
        )
        return _fan_out(
            ctx,
            settings.template_alert,
            f"[{settings.system_label}] Sensor alert",
            body,
            "alert",
        )

    body = (
        f"{settings.system_label} {ctx.display_name} back in range\n\n"
        f"Location: {ctx.location}\n"
        f"Current reading: {label} {current}\n"
        f"Threshold: {threshold}\n"
        f"Recovered at: {timestamp}\n\n"
        "The sensor reading has returned to the normal range."
    )
    return _fan_out(
        ctx,
        settings.template_recovery,
        f"[{settings.system_label}] Sensor recovered",
        body,
        "recovery",
    )


def render_liveness(
    ctx: DeviceContext,
    transition: "LivenessTransition",
    settings: Settings | None = None,
) -> list[NotificationRequest]:
    """Render an online or offline message for every recipient."""
    settings = settings or get_settings()
    owner = ctx.owner_name or "Owner"
    now_text = transition.occurred_at.strftime(TIME_FORMAT)

    if transition.current.value == "online":
        device_url = f"{settings.app_url}/devices/{quote(ctx.device_id)}"
        body = (
            f"{owner}'s {settings.system_label} {ctx.display_name} monitoring started\n\n"
            f"Location: {ctx.location}\n"
            "Status: online\n"
            f"Start time: {now_text}\n\n"
            "Device monitoring has resumed."
        )
        button = NotificationButton(
            name="View device", url_mobile=device_url, url_pc=device_url
        )
        return _fan_out(
            ctx, settings.template_online, "(Notice)", body, "online", [button]
        )

    last_seen = (
        transition.last_seen_at.strftime(TIME_FORMAT)
        if transition.last_seen_at
        else "never"
    )
    body = (
        f"{owner}'s {settings.system_label} {ctx.display_name} communication lost\n\n"
        f"Location: {ctx.location}\n"
        "Status: offline\n"
        f"Last contact: {last_seen}\n\n"
        "Please check the device connection and network on site."
    )
    return _fan_out(ctx, settings.template_offline, "(Notice)", body, "offline")


class NotificationSink(Protocol):
    """Non-blocking outbound queue for rendered notifications."""

    def submit(self, request: NotificationRequest) -> bool:
        """Enqueue without waiting; False when the request was dropped."""
        ...


def dispatch(sink: NotificationSink | None, requests: list[NotificationRequest]) -> int:
    """Hand requests to the sink; returns how many were accepted."""
    if sink is None or not requests:
        return 0

    accepted = 0
    for request in requests:
        if sink.submit(request):
            accepted += 1
        else:
            logger.warning(
                f"Notification dropped: {request.template_id} to {request.recipient} "
                f"for {request.device_id}"
            )
    return accepted
