"""Per-frame ingest pipeline: decode, persist, liveness, alerts.

A corrupt frame, a slow database or a failing notification never propagates
out of ``handle_frame``; each is logged and counted and the next frame is
processed normally.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldtelemetry.core.config import get_settings
from fieldtelemetry.core.exceptions import ChecksumMismatch, DecodeError, TruncatedFrame
from fieldtelemetry.db.session import async_session_maker
from fieldtelemetry.protocol.frame import DecodedFrame, decode_frame, is_telemetry_frame
from fieldtelemetry.services.alert_service import AlertEvaluator
from fieldtelemetry.services.liveness_service import LivenessTracker
from fieldtelemetry.services.state_store import LATEST_FRAME_KEY, DeviceStateStore
from fieldtelemetry.services.telemetry_service import TelemetryService

settings = get_settings()


@dataclass
class IngestStats:
    """Frame counters since startup."""

    received: int = 0
    decoded: int = 0
    persisted: int = 0
    rejected: Counter = field(default_factory=Counter)

    def as_dict(self) -> dict:
        return {
            "received": self.received,
            "decoded": self.decoded,
            "persisted": self.persisted,
            "rejected": dict(self.rejected),
        }


class TelemetryIngestService:
    """Runs one received frame through the whole pipeline."""

    def __init__(
        self,
        store: DeviceStateStore,
        tracker: LivenessTracker,
        evaluator: AlertEvaluator,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        persist_timeout: float | None = None,
    ):
        self._store = store
        self._tracker = tracker
        self._evaluator = evaluator
        self._session_factory = session_factory
        self.persist_timeout = (
            settings.persist_timeout_seconds if persist_timeout is None else persist_timeout
        )
        self.stats = IngestStats()

    async def handle_frame(
        self,
        device_id: str,
        payload: bytes,
        now: datetime | None = None,
    ) -> DecodedFrame | None:
        """Process one raw frame; returns the decoded frame or None if rejected."""
        self.stats.received += 1
        now = now or datetime.now()

        if not is_telemetry_frame(payload):
            self.stats.rejected["not_telemetry"] += 1
            logger.debug(f"Ignoring non-telemetry payload from {device_id} ({len(payload)} bytes)")
            return None

        try:
            frame = decode_frame(payload, received_at=int(now.timestamp() * 1000))
        except DecodeError as e:
            self.stats.rejected[self._reject_reason(e)] += 1
            logger.warning(f"Rejected frame from {device_id}: {e} [{payload.hex(' ')}]")
            return None

        self.stats.decoded += 1
        logger.debug(
            f"Frame from {device_id}: {len(frame.readings)} readings {frame.transport_counts}"
        )
        await self._store.set(device_id, LATEST_FRAME_KEY, frame)

        await self._persist(device_id, frame)
        await self._run_step("liveness", device_id, self._tracker.touch(device_id, now))
        await self._run_step("alerts", device_id, self._evaluator.evaluate(device_id, frame))
        return frame

    async def _persist(self, device_id: str, frame: DecodedFrame) -> None:
        try:
            async with self._session_factory() as db:
                await asyncio.wait_for(
                    TelemetryService(db).save_frame(device_id, frame),
                    timeout=self.persist_timeout,
                )
            self.stats.persisted += 1
        except asyncio.TimeoutError:
            logger.error(f"Saving frame from {device_id} timed out")
        except Exception as e:
            logger.error(f"Failed to save frame from {device_id}: {e}")

    async def _run_step(self, name: str, device_id: str, coro) -> None:
        try:
            await asyncio.wait_for(coro, timeout=self.persist_timeout * 2)
        except asyncio.TimeoutError:
            logger.error(f"{name} step for {device_id} timed out")
        except Exception as e:
            logger.error(f"{name} step for {device_id} failed: {e}")

    @staticmethod
    def _reject_reason(error: DecodeError) -> str:
        if isinstance(error, ChecksumMismatch):
            return "checksum"
        if isinstance(error, TruncatedFrame):
            return "truncated"
        return "decode"


# Global instance, set while bus services run
_ingest_service: TelemetryIngestService | None = None


def get_ingest_service() -> TelemetryIngestService | None:
    """Get running ingest service instance."""
    return _ingest_service


def set_ingest_service(service: TelemetryIngestService | None) -> None:
    """Set global ingest service instance."""
    global _ingest_service
    _ingest_service = service
