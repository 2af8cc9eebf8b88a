"""Sensor data model for compact telemetry rows."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldtelemetry.db.base import Base


class SensorData(Base):
    """One received frame in compact form."""

    __tablename__ = "sensor_data"

    # SQLite requires INTEGER (not BIGINT) for autoincrement
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), index=True)
    captured_at: Mapped[int] = mapped_column(BigInteger, index=True)  # Unix timestamp in ms
    sensor_count: Mapped[int] = mapped_column(Integer, default=0)

    # "unified" for the compact array format; other tags are legacy rows
    protocol: Mapped[str] = mapped_column(String(32), default="unified")

    # JSON array of arrays
    sensor_data: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_sensor_data_device_captured", "device_id", "captured_at"),
    )
