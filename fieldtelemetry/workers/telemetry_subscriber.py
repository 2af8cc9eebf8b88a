"""NATS subscriber for raw telemetry frames."""

import asyncio
from collections import deque
from typing import Callable

import nats
from loguru import logger
from nats.aio.client import Client as NatsClient
from nats.aio.msg import Msg

from fieldtelemetry.core.config import get_settings

settings = get_settings()


def device_id_from_subject(subject: str, prefix: str) -> str | None:
    """Extract the device id from ``<prefix>.<device_id>``."""
    head = f"{prefix}."
    if not subject.startswith(head):
        return None
    device_id = subject[len(head):]
    return device_id or None


class TelemetrySubscriber:
    """NATS subscriber delivering frames from field controllers."""

    def __init__(self, subject_prefix: str | None = None):
        self._client: NatsClient | None = None
        self._subscriptions: list = []
        self._running = False
        self._frame_handlers: list[Callable] = []
        # Frames waiting per device, drained in arrival order by one task each
        self._pending: dict[str, deque[bytes]] = {}
        self._device_tasks: dict[str, asyncio.Task] = {}
        self.subject_prefix = subject_prefix or settings.telemetry_subject_prefix

    async def connect(self) -> None:
        """Connect to NATS server."""
        try:
            self._client = await nats.connect(
                settings.nats_uri,
                reconnect_time_wait=2,
                max_reconnect_attempts=-1,
            )
            logger.info(f"Connected to NATS at {settings.nats_uri}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def disconnect(self) -> None:
        """Disconnect from NATS server."""
        if self._client:
            for sub in self._subscriptions:
                await sub.unsubscribe()
            await self._client.close()
            for task in list(self._device_tasks.values()):
                task.cancel()
            self._client = None
            logger.info("Disconnected from NATS")

    def add_frame_handler(self, handler: Callable) -> None:
        """Add frame handler callback, called as ``handler(device_id, payload)``."""
        self._frame_handlers.append(handler)

    async def subscribe_frames(self) -> None:
        """Subscribe to per-device telemetry subjects."""
        if not self._client:
            raise RuntimeError("Not connected to NATS")

        subject = f"{self.subject_prefix}.*"
        sub = await self._client.subscribe(subject, cb=self.on_message)
        self._subscriptions.append(sub)
        logger.info(f"Subscribed to NATS subject: {subject}")

    async def on_message(self, msg: Msg) -> None:
        """Queue one NATS message for its device.

        Frames of one device are handled in order; different devices are
        handled concurrently.
        """
        device_id = device_id_from_subject(msg.subject, self.subject_prefix)
        if not device_id:
            logger.warning(f"Telemetry on unexpected subject {msg.subject}")
            return

        self._pending.setdefault(device_id, deque()).append(bytes(msg.data))
        if device_id not in self._device_tasks:
            self._device_tasks[device_id] = asyncio.create_task(
                self._drain_device(device_id)
            )

    async def wait_idle(self) -> None:
        """Wait until every queued frame has been handled."""
        while self._device_tasks:
            await asyncio.gather(*list(self._device_tasks.values()), return_exceptions=True)

    async def _drain_device(self, device_id: str) -> None:
        pending = self._pending[device_id]
        try:
            while pending:
                await self._process_frame(device_id, pending.popleft())
        finally:
            self._device_tasks.pop(device_id, None)
            self._pending.pop(device_id, None)

    async def _process_frame(self, device_id: str, payload: bytes) -> None:
        for handler in self._frame_handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(device_id, payload)
                else:
                    handler(device_id, payload)
            except Exception as e:
                logger.error(f"Frame handler error for {device_id}: {e}")

    async def run(self) -> None:
        """Run the subscriber (blocking)."""
        await self.connect()
        await self.subscribe_frames()

        self._running = True
        logger.info("Telemetry subscriber running")

        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self.disconnect()

    def stop(self) -> None:
        """Stop the subscriber."""
        self._running = False
