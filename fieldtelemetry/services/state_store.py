"""Per-device state store.

Holds the per-device exclusion lock and a small key/value cache used by the
liveness tracker (last recorded status) and the ingest pipeline (latest
decoded frame). Injected into services instead of module-level dicts.
"""

import asyncio
from collections import defaultdict
from typing import Any, Protocol

LIVENESS_STATUS_KEY = "liveness_status"
LATEST_FRAME_KEY = "latest_frame"


class DeviceStateStore(Protocol):
    """Narrow interface over per-device state."""

    def lock(self, device_id: str) -> asyncio.Lock:
        """Exclusion scope for one device; devices do not share a lock."""
        ...

    async def get(self, device_id: str, key: str, default: Any = None) -> Any:
        ...

    async def set(self, device_id: str, key: str, value: Any) -> None:
        ...

    async def compare_and_set(
        self, device_id: str, key: str, expected: Any, value: Any
    ) -> bool:
        """Set ``value`` only if the current value equals ``expected``."""
        ...


class InMemoryStateStore:
    """Process-local DeviceStateStore."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._values: dict[tuple[str, str], Any] = {}

    def lock(self, device_id: str) -> asyncio.Lock:
        return self._locks[device_id]

    async def get(self, device_id: str, key: str, default: Any = None) -> Any:
        return self._values.get((device_id, key), default)

    async def set(self, device_id: str, key: str, value: Any) -> None:
        self._values[(device_id, key)] = value

    async def compare_and_set(
        self, device_id: str, key: str, expected: Any, value: Any
    ) -> bool:
        # No await between read and write, so this is atomic on the event loop
        if self._values.get((device_id, key)) != expected:
            return False
        self._values[(device_id, key)] = value
        return True

    def clear(self, device_id: str | None = None) -> None:
        """Drop cached values for one device, or for all devices."""
        if device_id is None:
            self._values.clear()
            return
        for key in [k for k in self._values if k[0] == device_id]:
            del self._values[key]


# Global instance
_state_store: InMemoryStateStore | None = None


def get_state_store() -> InMemoryStateStore:
    """Get state store singleton instance."""
    global _state_store
    if _state_store is None:
        _state_store = InMemoryStateStore()
    return _state_store
