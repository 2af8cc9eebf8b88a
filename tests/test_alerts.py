"""Tests for hysteresis alert evaluation."""

import asyncio
from datetime import datetime

import pytest
from sqlalchemy import select

from fieldtelemetry.models.alert import AlertLog, AlertRule
from fieldtelemetry.models.device import Device
from fieldtelemetry.protocol.codec import (
    decode_record,
    encode_record,
    record_from_json,
    record_to_json,
)
from fieldtelemetry.protocol.frame import decode_frame
from fieldtelemetry.services.alert_service import (
    AlertEvaluator,
    AlertTransition,
    next_state,
)


@pytest.mark.parametrize(
    "state,condition,value,expected",
    [
        ("normal", "above", 29.0, "normal"),
        ("normal", "above", 30.0, "normal"),
        ("normal", "above", 31.0, "alert"),
        ("alert", "above", 29.6, "alert"),
        ("alert", "above", 29.5, "normal"),
        ("alert", "above", 29.4, "normal"),
        ("normal", "below", 30.0, "normal"),
        ("normal", "below", 29.9, "alert"),
        ("alert", "below", 30.4, "alert"),
        ("alert", "below", 30.5, "normal"),
        ("alert", "sideways", 100.0, "alert"),
    ],
)
def test_next_state(state: str, condition: str, value: float, expected: str):
    """Test the pure transition function with threshold 30 and margin 0.5."""
    assert next_state(state, condition, value, 30.0, 0.5) == expected


async def _logs(session_factory) -> list[AlertLog]:
    async with session_factory() as db:
        result = await db.execute(select(AlertLog).order_by(AlertLog.id))
        return list(result.scalars().all())


async def _rule(session_factory, rule_id: int) -> AlertRule:
    async with session_factory() as db:
        return await db.get(AlertRule, rule_id)


@pytest.mark.asyncio
async def test_alert_and_recovery_sequence(
    session_factory, store, sink, sample_rules, sht20_frame
):
    """Test T-1, T+1, T-0.4, T-0.6 gives one alert and one recovery."""
    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)
    temperature_rule = sample_rules[0]

    fired = []
    for temperature in (29.0, 31.0, 29.6, 29.4):
        frame = decode_frame(sht20_frame(temperature, 60.0))
        transitions = await evaluator.evaluate("ctrl-001", frame)
        fired.append([t.event_type for t in transitions])

    assert fired == [[], ["alert"], [], ["recovery"]]

    logs = await _logs(session_factory)
    assert [log.event_type for log in logs] == ["alert", "recovery"]
    assert logs[0].rule_id == temperature_rule.id
    assert logs[0].sensor_value == 31.0
    assert logs[1].sensor_value == 29.4

    rule = await _rule(session_factory, temperature_rule.id)
    assert rule.current_state == "normal"
    assert rule.last_sensor_value == 29.4

    # One message per recipient per transition
    assert sink.kinds() == ["alert", "alert", "recovery", "recovery"]
    assert {r.recipient for r in sink.requests} == {"01012345678", "01098765432"}
    assert sink.requests[0].template_id == "seriallog3"
    assert sink.requests[2].template_id == "seriallog4"
    assert "SHT20_CH1 - temperature 31°C" in sink.requests[0].body


@pytest.mark.asyncio
async def test_below_rule_fires(session_factory, store, sink, sample_rules, sht20_frame):
    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)

    transitions = await evaluator.evaluate("ctrl-001", decode_frame(sht20_frame(25.0, 35.0)))

    assert len(transitions) == 1
    assert transitions[0].rule_id == sample_rules[1].id
    assert transitions[0].condition_type == "below"
    assert transitions[0].event_type == "alert"


@pytest.mark.asyncio
async def test_rules_without_matching_reading_are_skipped(
    session_factory, store, sink, sample_rules, sht20_frame
):
    """Test a frame carrying only SHT20_CH2 leaves SHT20_CH1 rules untouched."""
    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)

    transitions = await evaluator.evaluate(
        "ctrl-001", decode_frame(sht20_frame(40.0, 10.0, position=2))
    )

    assert transitions == []
    assert await _logs(session_factory) == []


@pytest.mark.asyncio
async def test_inactive_rule_is_ignored(
    db_session, session_factory, store, sink, sample_rules, sht20_frame
):
    for rule in sample_rules:
        rule.is_active = False
    await db_session.commit()

    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)
    transitions = await evaluator.evaluate("ctrl-001", decode_frame(sht20_frame(40.0, 10.0)))

    assert transitions == []


@pytest.mark.asyncio
async def test_dropped_notifications_keep_transition(
    session_factory, store, full_sink, sample_rules, sht20_frame
):
    """Test a full notification queue does not undo the committed transition."""
    evaluator = AlertEvaluator(store, notifier=full_sink, session_factory=session_factory)

    transitions = await evaluator.evaluate("ctrl-001", decode_frame(sht20_frame(31.0, 60.0)))

    assert len(transitions) == 1
    assert len(await _logs(session_factory)) == 1
    rule = await _rule(session_factory, sample_rules[0].id)
    assert rule.current_state == "alert"


@pytest.mark.asyncio
async def test_no_recipients_still_logs(
    db_session, session_factory, store, sink, sample_rules, sample_device, sht20_frame
):
    sample_device.set_recipients([])
    await db_session.commit()

    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)
    transitions = await evaluator.evaluate("ctrl-001", decode_frame(sht20_frame(31.0, 60.0)))

    assert len(transitions) == 1
    assert sink.requests == []
    assert len(await _logs(session_factory)) == 1


@pytest.mark.asyncio
async def test_stale_transition_is_not_applied(session_factory, store, sample_rules):
    """Test the compare-and-set refuses a transition from a state the rule is not in."""
    evaluator = AlertEvaluator(store, session_factory=session_factory)
    rule = sample_rules[0]
    stale = AlertTransition(
        rule_id=rule.id,
        device_id="ctrl-001",
        sensor_type=rule.sensor_type,
        sensor_name=rule.sensor_name,
        value_index=0,
        condition_type="above",
        previous_state="alert",
        new_state="normal",
        sensor_value=20.0,
        threshold_value=30.0,
        occurred_at=datetime.now(),
    )

    async with session_factory() as db:
        applied = await evaluator._commit(db, stale)

    assert applied is False
    assert await _logs(session_factory) == []
    assert (await _rule(session_factory, rule.id)).current_state == "normal"


def test_device_recipients_are_normalized():
    device = Device(device_id="d1")
    device.set_recipients(["010-1111-2222", "01011112222", " ", "010-3333-4444"])

    assert device.get_recipients() == ["01011112222", "01033334444"]


def test_non_list_recipients_are_ignored():
    assert Device(device_id="d1", recipients="12345").get_recipients() == []
    assert Device(device_id="d1", recipients='{"to": "010"}').get_recipients() == []


@pytest.mark.asyncio
async def test_frame_rebuilt_from_storage_fires_alert(
    session_factory, store, sink, sample_rules, sht20_frame
):
    """Test rules evaluate the same on a stored frame as on a live one."""
    live = decode_frame(sht20_frame(31.0, 60.0), received_at=1_700_000_000_000)
    stored = record_to_json(encode_record(live, "ctrl-001"))
    rebuilt = decode_record(record_from_json(stored, "ctrl-001", live.received_at))

    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)
    transitions = await evaluator.evaluate("ctrl-001", rebuilt)

    assert [(t.rule_id, t.event_type) for t in transitions] == [(sample_rules[0].id, "alert")]
    assert transitions[0].sensor_value == 31.0
    assert len(await _logs(session_factory)) == 1


@pytest.mark.asyncio
async def test_concurrent_frames_for_one_device_fire_once(
    session_factory, store, sink, sample_rules, sht20_frame
):
    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)
    frame = decode_frame(sht20_frame(31.0, 60.0))

    results = await asyncio.gather(
        evaluator.evaluate("ctrl-001", frame),
        evaluator.evaluate("ctrl-001", frame),
    )

    assert sorted(len(r) for r in results) == [0, 1]
    logs = await _logs(session_factory)
    assert [log.event_type for log in logs] == ["alert"]
    assert (await _rule(session_factory, sample_rules[0].id)).current_state == "alert"


@pytest.mark.asyncio
async def test_other_device_is_not_blocked_by_held_lock(
    db_session, session_factory, store, sink, sample_rules, sht20_frame
):
    """Test a held lock on one device does not delay another device."""
    db_session.add(
        AlertRule(
            device_id="ctrl-002",
            sensor_type=1,
            sensor_name="SHT20_CH1",
            value_index=0,
            condition_type="above",
            threshold_value=30.0,
            is_active=True,
            current_state="normal",
        )
    )
    await db_session.commit()

    evaluator = AlertEvaluator(store, notifier=sink, session_factory=session_factory)
    frame = decode_frame(sht20_frame(31.0, 60.0))

    async with store.lock("ctrl-001"):
        transitions = await asyncio.wait_for(evaluator.evaluate("ctrl-002", frame), timeout=2.0)
        blocked = asyncio.create_task(evaluator.evaluate("ctrl-001", frame))
        await asyncio.sleep(0.05)
        assert not blocked.done()

    assert [t.device_id for t in transitions] == ["ctrl-002"]
    assert [t.device_id for t in await blocked] == ["ctrl-001"]
