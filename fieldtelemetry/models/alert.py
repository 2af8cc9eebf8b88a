"""Alert rule and alert log models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldtelemetry.db.base import Base


class AlertRule(Base):
    """Per-device threshold rule with hysteresis state."""

    __tablename__ = "alert_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), index=True)

    # Target reading, e.g. sensor_name "SHT20_CH1" and value_index 0 (temperature)
    sensor_type: Mapped[int] = mapped_column(Integer)
    sensor_name: Mapped[str] = mapped_column(String(64))
    value_index: Mapped[int] = mapped_column(Integer, default=0)

    condition_type: Mapped[str] = mapped_column(String(16))  # above | below
    threshold_value: Mapped[float] = mapped_column(Float)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Mutated only by the alert evaluator
    current_state: Mapped[str] = mapped_column(String(16), default="normal")  # normal | alert
    last_alert_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_sensor_value: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class AlertLog(Base):
    """Append-only record of one alert or recovery transition."""

    __tablename__ = "alert_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), index=True)
    rule_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sensor_type: Mapped[int] = mapped_column(Integer)
    sensor_name: Mapped[str] = mapped_column(String(64))
    value_index: Mapped[int] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(String(16))  # alert | recovery
    condition_type: Mapped[str] = mapped_column(String(16))
    sensor_value: Mapped[float] = mapped_column(Float)
    threshold_value: Mapped[float] = mapped_column(Float)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), index=True
    )
