"""Alert rules and hysteresis evaluation.

Each active rule targets one value of one named reading (e.g. value 0 of
``SHT20_CH1``) and moves between two states:

    normal -> alert   above: value > T        below: value < T
    alert  -> normal  above: value <= T - m   below: value >= T + m

where m is the hysteresis margin (0.5 by default). A transition updates the
rule, appends an alert log row and then enqueues owner notifications; a lost
notification never rolls back the committed transition.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldtelemetry.core.config import get_settings
from fieldtelemetry.db.session import async_session_maker
from fieldtelemetry.models.alert import AlertLog, AlertRule
from fieldtelemetry.models.device import Device
from fieldtelemetry.protocol.frame import DecodedFrame
from fieldtelemetry.schemas.alert import AlertLogDTO, AlertRuleCreate, AlertRuleDTO
from fieldtelemetry.services.base_service import BaseService
from fieldtelemetry.services.notifications import (
    DeviceContext,
    NotificationSink,
    dispatch,
    render_alert,
)
from fieldtelemetry.services.state_store import DeviceStateStore

settings = get_settings()

STATE_NORMAL = "normal"
STATE_ALERT = "alert"

CONDITION_ABOVE = "above"
CONDITION_BELOW = "below"


def next_state(
    state: str,
    condition: str,
    value: float,
    threshold: float,
    margin: float = 0.5,
) -> str:
    """Pure hysteresis transition; returns the state after observing ``value``."""
    if condition == CONDITION_ABOVE:
        if state == STATE_NORMAL and value > threshold:
            return STATE_ALERT
        if state == STATE_ALERT and value <= threshold - margin:
            return STATE_NORMAL
    elif condition == CONDITION_BELOW:
        if state == STATE_NORMAL and value < threshold:
            return STATE_ALERT
        if state == STATE_ALERT and value >= threshold + margin:
            return STATE_NORMAL
    return state


@dataclass(frozen=True)
class AlertTransition:
    """One fired alert or recovery."""

    rule_id: int
    device_id: str
    sensor_type: int
    sensor_name: str
    value_index: int
    condition_type: str
    previous_state: str
    new_state: str
    sensor_value: float
    threshold_value: float
    occurred_at: datetime

    @property
    def event_type(self) -> str:
        return "alert" if self.new_state == STATE_ALERT else "recovery"

    @property
    def message(self) -> str:
        if self.event_type == "alert":
            direction = "above" if self.condition_type == CONDITION_ABOVE else "below"
            return (
                f"{self.sensor_name} alert: value went {direction} threshold "
                f"(current: {self.sensor_value:g}, threshold: {self.threshold_value:g})"
            )
        return (
            f"{self.sensor_name} recovered: value back in normal range "
            f"(current: {self.sensor_value:g}, threshold: {self.threshold_value:g})"
        )


class AlertEvaluator:
    """Runs the hysteresis state machine for every active rule of a device."""

    def __init__(
        self,
        store: DeviceStateStore,
        notifier: NotificationSink | None = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        margin: float | None = None,
        persist_timeout: float | None = None,
    ):
        self._store = store
        self._notifier = notifier
        self._session_factory = session_factory
        self.margin = settings.hysteresis_margin if margin is None else margin
        self.persist_timeout = (
            settings.persist_timeout_seconds if persist_timeout is None else persist_timeout
        )

    async def evaluate(self, device_id: str, frame: DecodedFrame) -> list[AlertTransition]:
        """Evaluate all active rules of a device against one frame.

        Rules whose sensor has no active reading in the frame are skipped.
        Returns the transitions that were committed.
        """
        async with self._store.lock(device_id):
            async with self._session_factory() as db:
                result = await db.execute(
                    select(AlertRule).where(
                        AlertRule.device_id == device_id,
                        AlertRule.is_active == True,
                    )
                )
                rules = list(result.scalars().all())
                if not rules:
                    return []

                # Decide first: a rollback in _commit expires the loaded rules
                candidates = [
                    transition
                    for transition in (self._check_rule(device_id, r, frame) for r in rules)
                    if transition is not None
                ]

                transitions: list[AlertTransition] = []
                for transition in candidates:
                    if await self._commit(db, transition):
                        transitions.append(transition)

                device = await db.get(Device, device_id) if transitions else None

        if transitions:
            self._notify(device, transitions)
        return transitions

    def _check_rule(
        self, device_id: str, rule: AlertRule, frame: DecodedFrame
    ) -> AlertTransition | None:
        if not rule.sensor_name:
            return None

        reading = frame.find_active(rule.sensor_name)
        if reading is None:
            logger.debug(f"Rule {rule.id} skipped: no active reading {rule.sensor_name}")
            return None

        value = reading.value_at(rule.value_index)
        if value is None:
            logger.debug(
                f"Rule {rule.id} skipped: {rule.sensor_name} has no value {rule.value_index}"
            )
            return None

        current = rule.current_state or STATE_NORMAL
        new = next_state(current, rule.condition_type, value, rule.threshold_value, self.margin)
        if new == current:
            return None

        return AlertTransition(
            rule_id=rule.id,
            device_id=device_id,
            sensor_type=rule.sensor_type,
            sensor_name=rule.sensor_name,
            value_index=rule.value_index,
            condition_type=rule.condition_type,
            previous_state=current,
            new_state=new,
            sensor_value=value,
            threshold_value=rule.threshold_value,
            occurred_at=datetime.now(),
        )

    async def _commit(self, db: AsyncSession, transition: AlertTransition) -> bool:
        """Persist the rule state and log row; False if not applied."""
        try:
            return await asyncio.wait_for(
                self._write_transition(db, transition), timeout=self.persist_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Alert transition for rule {transition.rule_id} timed out")
        except Exception as e:
            logger.error(f"Failed to persist alert transition for rule {transition.rule_id}: {e}")
        await db.rollback()
        return False

    async def _write_transition(self, db: AsyncSession, transition: AlertTransition) -> bool:
        # Compare-and-set on current_state guards against a concurrent writer
        result = await db.execute(
            update(AlertRule)
            .where(
                AlertRule.id == transition.rule_id,
                AlertRule.current_state == transition.previous_state,
            )
            .values(
                current_state=transition.new_state,
                last_alert_time=transition.occurred_at,
                last_sensor_value=transition.sensor_value,
                updated_at=transition.occurred_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info(f"Rule {transition.rule_id} state changed concurrently, skipping")
            return False

        db.add(
            AlertLog(
                device_id=transition.device_id,
                rule_id=transition.rule_id,
                sensor_type=transition.sensor_type,
                sensor_name=transition.sensor_name,
                value_index=transition.value_index,
                event_type=transition.event_type,
                condition_type=transition.condition_type,
                sensor_value=transition.sensor_value,
                threshold_value=transition.threshold_value,
                message=transition.message,
                created_at=transition.occurred_at,
            )
        )
        await db.commit()
        logger.info(f"[{transition.device_id}] {transition.message}")
        return True

    def _notify(self, device: Device | None, transitions: list[AlertTransition]) -> None:
        if self._notifier is None:
            return
        if device is None:
            logger.debug("Alert notification skipped: device not registered")
            return

        ctx = DeviceContext.from_model(device)
        if not ctx.recipients:
            logger.debug(f"Alert notification skipped: no recipients for {ctx.device_id}")
            return

        for transition in transitions:
            dispatch(self._notifier, render_alert(ctx, transition, settings))


class AlertService(BaseService[AlertRule]):
    """Alert rule and alert log management."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, AlertRule)

    async def get_rules(self, device_id: str) -> list[AlertRuleDTO]:
        """Get all rules of a device."""
        rules = await self.list_for_device(device_id)
        return [AlertRuleDTO.model_validate(r) for r in rules]

    async def save_rule(self, device_id: str, data: AlertRuleCreate) -> AlertRuleDTO | None:
        """Create a rule, or update it when ``data.id`` is set.

        Returns None when the rule to update does not exist for the device.
        """
        if data.id is not None:
            rule = await self.get_for_device(device_id, data.id)
            if not rule:
                return None
            rule.sensor_type = data.sensor_type
            rule.sensor_name = data.sensor_name
            rule.value_index = data.value_index
            rule.condition_type = data.condition_type
            rule.threshold_value = data.threshold_value
            rule.is_active = data.is_active
            rule = await self.update(rule)
        else:
            rule = await self.create(
                AlertRule(
                    device_id=device_id,
                    sensor_type=data.sensor_type,
                    sensor_name=data.sensor_name,
                    value_index=data.value_index,
                    condition_type=data.condition_type,
                    threshold_value=data.threshold_value,
                    is_active=data.is_active,
                    current_state=STATE_NORMAL,
                )
            )
        return AlertRuleDTO.model_validate(rule)

    async def delete_rule(self, device_id: str, rule_id: int) -> bool:
        rule = await self.get_for_device(device_id, rule_id)
        if not rule:
            return False
        await self.delete(rule)
        return True

    async def get_logs(self, device_id: str, limit: int = 50) -> list[AlertLogDTO]:
        """Get most recent alert logs of a device."""
        result = await self.db.execute(
            select(AlertLog)
            .where(AlertLog.device_id == device_id)
            .order_by(AlertLog.id.desc())
            .limit(limit)
        )
        return [AlertLogDTO.model_validate(log) for log in result.scalars().all()]

    async def clear_logs(self, device_id: str) -> int:
        """Delete all alert logs of a device."""
        result = await self.db.execute(
            delete(AlertLog).where(AlertLog.device_id == device_id)
        )
        await self.db.commit()
        return result.rowcount
