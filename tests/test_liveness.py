"""Tests for device liveness tracking."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from fieldtelemetry.models.device import Device, DeviceStatusLog
from fieldtelemetry.services.liveness_service import (
    LivenessStatus,
    LivenessTracker,
    device_status,
    should_notify,
)
from fieldtelemetry.services.state_store import InMemoryStateStore


@pytest.mark.parametrize(
    "minutes,expected",
    [
        (0, LivenessStatus.ONLINE),
        (5, LivenessStatus.ONLINE),
        (5.5, LivenessStatus.RECENT),
        (14.9, LivenessStatus.RECENT),
        (15, LivenessStatus.OFFLINE),
        (120, LivenessStatus.OFFLINE),
    ],
)
def test_device_status_thresholds(minutes: float, expected: LivenessStatus):
    now = datetime(2026, 3, 1, 12, 0, 0)
    assert device_status(now - timedelta(minutes=minutes), now) == expected


def test_never_seen_is_unknown():
    assert device_status(None, datetime.now()) == LivenessStatus.UNKNOWN


def test_notify_transitions():
    assert should_notify(LivenessStatus.OFFLINE, LivenessStatus.ONLINE)
    assert should_notify(LivenessStatus.ONLINE, LivenessStatus.OFFLINE)
    assert should_notify(LivenessStatus.UNKNOWN, LivenessStatus.OFFLINE)
    assert not should_notify(LivenessStatus.UNKNOWN, LivenessStatus.ONLINE)
    assert not should_notify(LivenessStatus.ONLINE, LivenessStatus.RECENT)
    assert not should_notify(LivenessStatus.RECENT, LivenessStatus.OFFLINE)


def _tracker(store, sink, session_factory, auto_register: bool = False) -> LivenessTracker:
    return LivenessTracker(
        store,
        notifier=sink,
        session_factory=session_factory,
        online_minutes=5,
        offline_minutes=15,
        auto_register=auto_register,
    )


async def _status_logs(session_factory) -> list[str]:
    async with session_factory() as db:
        result = await db.execute(select(DeviceStatusLog).order_by(DeviceStatusLog.id))
        return [row.status_change for row in result.scalars().all()]


@pytest.mark.asyncio
async def test_first_contact_is_silent(session_factory, store, sink, sample_device, at):
    """Test unknown -> online writes nothing and notifies nobody."""
    tracker = _tracker(store, sink, session_factory)

    transition = await tracker.touch("ctrl-001", at(0))

    assert transition is None
    assert sink.requests == []
    assert await _status_logs(session_factory) == []

    async with session_factory() as db:
        device = await db.get(Device, "ctrl-001")
        assert device.last_seen_at == at(0)


@pytest.mark.asyncio
async def test_liveness_lifecycle(session_factory, store, sink, sample_device, at):
    """Test offline and online transitions each notify exactly once."""
    tracker = _tracker(store, sink, session_factory)

    await tracker.touch("ctrl-001", at(0))

    # Recent is not a notifying state
    assert await tracker.sweep(at(10)) == []

    went_offline = await tracker.sweep(at(20))
    assert [(t.previous, t.current) for t in went_offline] == [
        (LivenessStatus.UNKNOWN, LivenessStatus.OFFLINE)
    ]
    assert await tracker.sweep(at(25)) == []

    back_online = await tracker.touch("ctrl-001", at(30))
    assert back_online is not None
    assert back_online.previous == LivenessStatus.OFFLINE
    assert back_online.current == LivenessStatus.ONLINE

    # Further frames while online change nothing
    assert await tracker.touch("ctrl-001", at(31)) is None

    lost = await tracker.sweep(at(50))
    assert [(t.previous, t.current) for t in lost] == [
        (LivenessStatus.ONLINE, LivenessStatus.OFFLINE)
    ]
    assert await tracker.sweep(at(55)) == []

    assert await _status_logs(session_factory) == ["offline", "online", "offline"]
    assert sink.kinds() == ["offline", "offline", "online", "online", "offline", "offline"]

    online_message = sink.requests[2]
    assert online_message.template_id == "seriallog1"
    assert online_message.buttons[0].url_mobile.endswith("/devices/ctrl-001")
    assert sink.requests[0].template_id == "seriallog2"


@pytest.mark.asyncio
async def test_recorded_status_survives_restart(session_factory, store, sink, sample_device, at):
    """Test a fresh store falls back to the newest status log row."""
    tracker = _tracker(store, sink, session_factory)
    await tracker.touch("ctrl-001", at(0))
    await tracker.sweep(at(20))

    restarted = _tracker(InMemoryStateStore(), sink, session_factory)
    async with session_factory() as db:
        assert await restarted.recorded_status(db, "ctrl-001") == LivenessStatus.OFFLINE

    transition = await restarted.touch("ctrl-001", at(40))
    assert transition is not None
    assert transition.current == LivenessStatus.ONLINE


@pytest.mark.asyncio
async def test_never_seen_device_stays_unknown(
    session_factory, store, sink, sample_device, at
):
    tracker = _tracker(store, sink, session_factory)

    assert await tracker.sweep(at(0)) == []
    assert sink.requests == []
    assert await _status_logs(session_factory) == []


@pytest.mark.asyncio
async def test_unregistered_device(session_factory, store, sink, at):
    """Test frames from unknown devices are ignored unless auto-registration is on."""
    tracker = _tracker(store, sink, session_factory)
    assert await tracker.touch("ctrl-new", at(0)) is None

    async with session_factory() as db:
        assert await db.get(Device, "ctrl-new") is None

    registering = _tracker(store, sink, session_factory, auto_register=True)
    await registering.touch("ctrl-new", at(1))

    async with session_factory() as db:
        device = await db.get(Device, "ctrl-new")
        assert device is not None
        assert device.last_seen_at == at(1)
