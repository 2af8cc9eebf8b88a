"""Device liveness tracking.

Status is derived from the elapsed time since a device was last seen:

    elapsed <= online threshold   -> online
    elapsed >= offline threshold  -> offline
    in between                    -> recent
    never seen                    -> unknown

The recorded status is the newest row of ``device_status_logs``, cached per
device in the state store once read or written. Rows are appended only for
transitions that notify the owner: offline -> online, online -> offline and
unknown -> offline. A first-ever contact (unknown -> online) stays silent.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldtelemetry.core.config import get_settings
from fieldtelemetry.db.session import async_session_maker
from fieldtelemetry.models.device import Device, DeviceStatusLog
from fieldtelemetry.schemas.device import DeviceStatusDTO
from fieldtelemetry.services.base_service import BaseService
from fieldtelemetry.services.notifications import (
    DeviceContext,
    NotificationSink,
    dispatch,
    render_liveness,
)
from fieldtelemetry.services.state_store import LIVENESS_STATUS_KEY, DeviceStateStore

settings = get_settings()


class LivenessStatus(str, Enum):
    ONLINE = "online"
    RECENT = "recent"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


NOTIFY_TRANSITIONS = {
    (LivenessStatus.OFFLINE, LivenessStatus.ONLINE),
    (LivenessStatus.ONLINE, LivenessStatus.OFFLINE),
    (LivenessStatus.UNKNOWN, LivenessStatus.OFFLINE),
}


def device_status(
    last_seen_at: datetime | None,
    now: datetime,
    online_minutes: float = 5,
    offline_minutes: float = 15,
) -> LivenessStatus:
    """Derive liveness status from the last-seen timestamp."""
    if last_seen_at is None:
        return LivenessStatus.UNKNOWN

    elapsed = (now - last_seen_at).total_seconds() / 60
    if elapsed <= online_minutes:
        return LivenessStatus.ONLINE
    if elapsed >= offline_minutes:
        return LivenessStatus.OFFLINE
    return LivenessStatus.RECENT


def should_notify(previous: LivenessStatus, current: LivenessStatus) -> bool:
    """Check if a status change is worth telling the owner about."""
    return (previous, current) in NOTIFY_TRANSITIONS


@dataclass(frozen=True)
class LivenessTransition:
    """A notified liveness status change."""

    device_id: str
    previous: LivenessStatus
    current: LivenessStatus
    last_seen_at: datetime | None
    occurred_at: datetime

    @property
    def message(self) -> str:
        return f"Device {self.device_id} is now {self.current.value}"


class LivenessTracker:
    """Updates last-seen timestamps and raises liveness notifications."""

    def __init__(
        self,
        store: DeviceStateStore,
        notifier: NotificationSink | None = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        online_minutes: float | None = None,
        offline_minutes: float | None = None,
        auto_register: bool | None = None,
    ):
        self._store = store
        self._notifier = notifier
        self._session_factory = session_factory
        self.online_minutes = (
            settings.online_threshold_minutes if online_minutes is None else online_minutes
        )
        self.offline_minutes = (
            settings.offline_threshold_minutes if offline_minutes is None else offline_minutes
        )
        self.auto_register = (
            settings.auto_register_devices if auto_register is None else auto_register
        )

    def status(self, last_seen_at: datetime | None, now: datetime) -> LivenessStatus:
        return device_status(last_seen_at, now, self.online_minutes, self.offline_minutes)

    async def touch(
        self, device_id: str, now: datetime | None = None
    ) -> LivenessTransition | None:
        """Record a frame arrival and check for a status change."""
        now = now or datetime.now()

        async with self._store.lock(device_id):
            async with self._session_factory() as db:
                device = await db.get(Device, device_id)
                if device is None:
                    if not self.auto_register:
                        logger.debug(f"Frame from unregistered device {device_id}")
                        return None
                    device = Device(device_id=device_id, device_name=device_id)
                    db.add(device)
                    logger.info(f"Registered new device {device_id}")

                device.last_seen_at = now
                await db.commit()
                return await self._check(db, device, now)

    async def check(
        self, device_id: str, now: datetime | None = None
    ) -> LivenessTransition | None:
        """Re-derive status without touching last-seen."""
        now = now or datetime.now()

        async with self._store.lock(device_id):
            async with self._session_factory() as db:
                device = await db.get(Device, device_id)
                if device is None:
                    return None
                return await self._check(db, device, now)

    async def sweep(self, now: datetime | None = None) -> list[LivenessTransition]:
        """Check every device not seen within the offline threshold."""
        now = now or datetime.now()
        cutoff = now - timedelta(minutes=self.offline_minutes)

        async with self._session_factory() as db:
            result = await db.execute(
                select(Device.device_id).where(
                    or_(Device.last_seen_at == None, Device.last_seen_at < cutoff)
                )
            )
            device_ids = list(result.scalars().all())

        transitions: list[LivenessTransition] = []
        for device_id in device_ids:
            try:
                transition = await self.check(device_id, now)
            except Exception as e:
                logger.error(f"Liveness check failed for {device_id}: {e}")
                continue
            if transition:
                transitions.append(transition)

        if transitions:
            logger.info(f"Liveness sweep: {len(transitions)} device(s) changed status")
        return transitions

    async def recorded_status(self, db: AsyncSession, device_id: str) -> LivenessStatus:
        """Last notified status; cached, falls back to the newest log row."""
        cached = await self._store.get(device_id, LIVENESS_STATUS_KEY)
        if cached is not None:
            return cached

        result = await db.execute(
            select(DeviceStatusLog.status_change)
            .where(DeviceStatusLog.device_id == device_id)
            .order_by(DeviceStatusLog.id.desc())
            .limit(1)
        )
        value = result.scalar_one_or_none()
        try:
            status = LivenessStatus(value) if value else LivenessStatus.UNKNOWN
        except ValueError:
            logger.warning(f"Unrecognized status '{value}' in log for {device_id}")
            status = LivenessStatus.UNKNOWN

        await self._store.set(device_id, LIVENESS_STATUS_KEY, status)
        return status

    async def _check(
        self, db: AsyncSession, device: Device, now: datetime
    ) -> LivenessTransition | None:
        current = self.status(device.last_seen_at, now)
        previous = await self.recorded_status(db, device.device_id)
        if current == previous or not should_notify(previous, current):
            return None

        transition = LivenessTransition(
            device_id=device.device_id,
            previous=previous,
            current=current,
            last_seen_at=device.last_seen_at,
            occurred_at=now,
        )

        try:
            await asyncio.wait_for(
                self._write_log(db, transition), timeout=settings.persist_timeout_seconds
            )
        except Exception as e:
            logger.error(f"Failed to record liveness change for {device.device_id}: {e}")
            await db.rollback()
            return None

        await self._store.set(device.device_id, LIVENESS_STATUS_KEY, current)
        logger.info(
            f"Device {device.device_id}: {previous.value} -> {current.value}"
        )

        if self._notifier is not None:
            ctx = DeviceContext.from_model(device)
            dispatch(self._notifier, render_liveness(ctx, transition, settings))
        return transition

    async def _write_log(self, db: AsyncSession, transition: LivenessTransition) -> None:
        db.add(
            DeviceStatusLog(
                device_id=transition.device_id,
                status_change=transition.current.value,
                message=transition.message,
                created_at=transition.occurred_at,
            )
        )
        await db.commit()


class DeviceService(BaseService[Device]):
    """Device status queries."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Device)

    async def get_status(
        self, device_id: str, now: datetime | None = None
    ) -> DeviceStatusDTO | None:
        """Get derived liveness status of a device."""
        device = await self.get_by_id(device_id)
        if not device:
            return None

        now = now or datetime.now()
        minutes = None
        if device.last_seen_at is not None:
            minutes = round((now - device.last_seen_at).total_seconds() / 60, 1)

        return DeviceStatusDTO(
            device_id=device.device_id,
            device_name=device.device_name,
            status=device_status(
                device.last_seen_at,
                now,
                settings.online_threshold_minutes,
                settings.offline_threshold_minutes,
            ).value,
            last_seen_at=device.last_seen_at,
            minutes_since_seen=minutes,
        )
