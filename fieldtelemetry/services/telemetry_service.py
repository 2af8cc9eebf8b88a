"""Telemetry persistence and history queries."""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import and_, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldtelemetry.core.exceptions import MalformedStoredRecord
from fieldtelemetry.models.telemetry import SensorData
from fieldtelemetry.protocol.codec import (
    UNIFIED_PROTOCOL,
    decode_record,
    encode_record,
    record_from_json,
    record_to_json,
)
from fieldtelemetry.protocol.frame import DecodedFrame
from fieldtelemetry.protocol.sensor_types import Transport
from fieldtelemetry.schemas.telemetry import FrameDTO, TelemetryHistoryResponse
from fieldtelemetry.services.base_service import BaseService


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class TelemetryService(BaseService[SensorData]):
    """Stores decoded frames in compact form and reads them back."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, SensorData)

    async def save_frame(self, device_id: str, frame: DecodedFrame) -> SensorData:
        """Persist a decoded frame as one unified row."""
        record = encode_record(frame, device_id)
        row = SensorData(
            device_id=device_id,
            captured_at=record.captured_at,
            sensor_count=record.reading_count,
            protocol=UNIFIED_PROTOCOL,
            sensor_data=record_to_json(record),
        )
        self.db.add(row)
        await self.db.commit()
        return row

    def decode_row(self, row: SensorData) -> DecodedFrame | None:
        """Decode a stored row; None when the whole payload is unreadable."""
        try:
            record = record_from_json(row.sensor_data, row.device_id, row.captured_at)
        except MalformedStoredRecord as e:
            logger.warning(f"Skipping malformed sensor_data row {row.id}: {e}")
            return None
        return decode_record(record)

    async def get_history(
        self,
        device_id: str,
        hours: int = 24,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
        transport: Transport | None = None,
    ) -> TelemetryHistoryResponse:
        """Get decoded history, newest first.

        An explicit start/end range takes precedence over ``hours``.
        """
        filters = [
            SensorData.device_id == device_id,
            SensorData.protocol == UNIFIED_PROTOCOL,
        ]
        if start or end:
            if start:
                filters.append(SensorData.captured_at >= _to_ms(start))
            if end:
                filters.append(SensorData.captured_at <= _to_ms(end))
        else:
            since = datetime.now() - timedelta(hours=hours)
            filters.append(SensorData.captured_at >= _to_ms(since))

        result = await self.db.execute(
            select(SensorData)
            .where(and_(*filters))
            .order_by(desc(SensorData.captured_at), desc(SensorData.id))
            .limit(limit)
        )

        items: list[FrameDTO] = []
        for row in result.scalars().all():
            frame = self.decode_row(row)
            if frame is None:
                continue
            if transport is not None:
                frame.readings = [r for r in frame.readings if r.transport == transport]
                if not frame.readings:
                    continue
            items.append(FrameDTO.from_frame(device_id, frame))

        return TelemetryHistoryResponse(device_id=device_id, count=len(items), items=items)

    async def get_latest(self, device_id: str) -> FrameDTO | None:
        """Get the newest decodable stored frame of a device."""
        result = await self.db.execute(
            select(SensorData)
            .where(
                SensorData.device_id == device_id,
                SensorData.protocol == UNIFIED_PROTOCOL,
            )
            .order_by(desc(SensorData.captured_at), desc(SensorData.id))
            .limit(10)
        )
        for row in result.scalars().all():
            frame = self.decode_row(row)
            if frame is not None:
                return FrameDTO.from_frame(device_id, frame)
        return None
