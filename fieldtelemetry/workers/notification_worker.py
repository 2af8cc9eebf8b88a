"""Notification worker delivering owner messages through the Alimtalk gateway."""

import asyncio
from typing import Protocol

import httpx
from loguru import logger

from fieldtelemetry.core.config import Settings, get_settings
from fieldtelemetry.schemas.notification import AlimtalkMessage, NotificationRequest

settings = get_settings()


class NotificationSender(Protocol):
    """Delivers one rendered notification."""

    async def send(self, request: NotificationRequest) -> bool:
        ...


class AlimtalkSender:
    """Kakao Alimtalk gateway client with SMS fallback."""

    def __init__(self, client: httpx.AsyncClient, config: Settings | None = None):
        self._client = client
        self._config = config or settings

    def build_payload(self, request: NotificationRequest) -> list[dict]:
        """Build gateway payload; the gateway expects a one-element array."""
        button1 = None
        if request.buttons:
            button1 = request.buttons[0].model_dump(exclude_none=True)

        msg = AlimtalkMessage(
            phn=request.recipient.replace("-", ""),
            profile=self._config.notification_profile,
            tmpl_id=request.template_id,
            msg=request.body,
            msg_sms=request.body,
            sms_sender=self._config.notification_sms_sender,
            sms_lms_title=request.title,
            button1=button1,
        )
        return [msg.model_dump(by_alias=True, exclude_none=True)]

    async def send(self, request: NotificationRequest) -> bool:
        """Send one message; True when the gateway reports success."""
        try:
            response = await self._client.post(
                self._config.notification_api_url,
                json=self.build_payload(request),
                headers={
                    "Content-Type": "application/json",
                    "userid": self._config.notification_user_id,
                },
            )
        except httpx.RequestError as e:
            logger.error(f"Notification error: {request.recipient} - {e}")
            return False

        if response.status_code >= 400:
            logger.warning(
                f"Notification failed: {request.recipient} - {response.status_code}"
            )
            return False

        try:
            result = response.json()
        except ValueError:
            logger.warning(f"Notification gateway returned non-JSON body for {request.recipient}")
            return False

        if isinstance(result, list) and result and result[0].get("code") == "success":
            logger.debug(f"Notification sent: {request.template_id} to {request.recipient}")
            return True

        logger.warning(f"Notification rejected: {request.recipient} - {result}")
        return False


class NotificationWorker:
    """Bounded queue of notifications consumed by a single delivery loop.

    ``submit`` never blocks: when the queue is full the request is dropped
    and a warning is logged.
    """

    def __init__(
        self,
        sender: NotificationSender | None = None,
        maxsize: int | None = None,
    ):
        self._queue: asyncio.Queue[NotificationRequest] = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else settings.notification_queue_size
        )
        self._sender = sender
        self._owns_client = sender is None
        self._client: httpx.AsyncClient | None = None
        self._running = False
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, request: NotificationRequest) -> bool:
        """Add notification to the queue without waiting."""
        if not settings.notification_enabled:
            logger.debug(f"Notifications disabled, skipping {request.template_id}")
            return True
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Notification queue full ({self._queue.maxsize}), "
                f"dropping {request.template_id} for {request.device_id}"
            )
            return False
        return True

    async def start(self) -> None:
        """Start the worker."""
        self._running = True
        if self._owns_client:
            self._client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
            self._sender = AlimtalkSender(self._client)
        logger.info("Notification worker started")

    async def stop(self) -> None:
        """Stop the worker."""
        self._running = False
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Notification worker stopped")

    async def run(self) -> None:
        """Run the worker (blocking)."""
        await self.start()

        try:
            while self._running:
                try:
                    request = await asyncio.wait_for(
                        self._queue.get(),
                        timeout=1.0,
                    )
                    await self._deliver(request)
                except asyncio.TimeoutError:
                    continue
                except Exception as e:
                    logger.error(f"Error delivering notification: {e}")
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def process_pending(self) -> int:
        """Deliver everything currently queued; returns the number handled."""
        handled = 0
        while not self._queue.empty():
            await self._deliver(self._queue.get_nowait())
            handled += 1
        return handled

    async def _deliver(self, request: NotificationRequest) -> None:
        if self._sender is None:
            logger.warning("Notification worker has no sender, dropping message")
            self.failed += 1
            return

        try:
            ok = await self._sender.send(request)
        except Exception as e:
            logger.error(f"Notification sender error: {e}")
            ok = False

        if ok:
            self.sent += 1
        else:
            self.failed += 1
