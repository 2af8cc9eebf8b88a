"""Device and device status log models."""

import json
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldtelemetry.db.base import Base


class Device(Base):
    """Registered field controller."""

    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Phone numbers to notify (JSON array)
    recipients: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def get_recipients(self) -> list[str]:
        """Deserialize recipients JSON to a de-duplicated list of digits-only numbers."""
        if not self.recipients:
            return []
        try:
            numbers = json.loads(self.recipients)
        except json.JSONDecodeError:
            return []
        if not isinstance(numbers, list):
            return []

        cleaned: list[str] = []
        for number in numbers:
            digits = str(number).replace("-", "").strip()
            if digits and digits not in cleaned:
                cleaned.append(digits)
        return cleaned

    def set_recipients(self, recipients: list[str]) -> None:
        """Serialize recipients list to JSON."""
        self.recipients = json.dumps(recipients) if recipients else None


class DeviceStatusLog(Base):
    """Append-only liveness transition log; the newest row is the recorded status."""

    __tablename__ = "device_status_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(64), index=True)
    status_change: Mapped[str] = mapped_column(String(16))  # online | recent | offline | unknown
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), index=True
    )
