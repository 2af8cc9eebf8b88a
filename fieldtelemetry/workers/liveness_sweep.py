"""Periodic sweep marking silent devices offline."""

from loguru import logger

from fieldtelemetry.services.liveness_service import LivenessTracker


class LivenessSweepWorker:
    """Scheduled job checking devices that stopped sending frames."""

    def __init__(self, tracker: LivenessTracker):
        self.tracker = tracker

    async def run(self) -> None:
        """Run one sweep."""
        logger.debug(
            f"Running liveness sweep (offline after {self.tracker.offline_minutes} min)"
        )
        try:
            await self.tracker.sweep()
        except Exception as e:
            logger.error(f"Liveness sweep error: {e}")
