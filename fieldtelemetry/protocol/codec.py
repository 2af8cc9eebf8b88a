"""Compact storage codec for decoded frames.

Each reading is stored as an integer array::

    [sensor_id, type_code, position, status_flag, *scaled_values]

Scaled values are physical values times the per-type multiplier from the
sensor catalogue. Text labels are never stored; they are re-derived on decode
through the same rules the frame decoder uses.
"""

import json
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from fieldtelemetry.core.exceptions import MalformedStoredRecord
from fieldtelemetry.protocol.frame import (
    DEFAULT_DEVICE_TAG,
    FUNCTION_READ_REGISTERS,
    DecodedFrame,
    DecodedReading,
)
from fieldtelemetry.protocol.sensor_types import combine_id, get_descriptor

UNIFIED_PROTOCOL = "unified"

STATUS_INACTIVE = 0
STATUS_ACTIVE = 1

FIXED_FIELDS = 4  # sensor_id, type_code, position, status_flag
LEGACY_MULTIPLIER = 100


@dataclass
class CompactTelemetryRecord:
    """Persisted projection of a decoded frame."""

    device_id: str
    captured_at: int  # Unix ms
    reading_count: int
    readings: list[list[int]] = field(default_factory=list)
    # Legacy rows scaled every value by one factor instead of per type
    uniform_multiplier: int | None = None


def to_fixed(value: float, multiplier: int) -> int:
    """Scale to fixed point, rounding half away from zero."""
    scaled = value * multiplier
    return int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))


def encode_reading(reading: DecodedReading) -> list[int]:
    descriptor = get_descriptor(reading.type_code)
    scaled = [
        to_fixed(value, multiplier)
        for value, multiplier in zip(reading.values, descriptor.multipliers)
    ]
    status = STATUS_ACTIVE if reading.active else STATUS_INACTIVE
    return [reading.sensor_id, reading.type_code, reading.position, status, *scaled]


def encode_record(frame: DecodedFrame, device_id: str) -> CompactTelemetryRecord:
    """Project a decoded frame into its compact storage form."""
    readings = [encode_reading(r) for r in frame.readings]
    return CompactTelemetryRecord(
        device_id=device_id,
        captured_at=frame.received_at,
        reading_count=len(readings),
        readings=readings,
    )


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def decode_entry(
    entry: Sequence[Any],
    uniform_multiplier: int | None = None,
) -> DecodedReading:
    """Rebuild one reading from its stored array.

    Raises:
        MalformedStoredRecord: Entry is not an array, or the fields its type
            needs are missing, non-numeric or not finite.
    """
    if not isinstance(entry, (list, tuple)) or len(entry) < FIXED_FIELDS:
        raise MalformedStoredRecord(entry, "expected at least 4 fields")
    if not all(_is_number(x) for x in entry[:FIXED_FIELDS]):
        raise MalformedStoredRecord(entry, "non-numeric header field")

    sensor_id, type_code, position, status = (int(x) for x in entry[:FIXED_FIELDS])
    descriptor = get_descriptor(type_code)
    scaled = entry[FIXED_FIELDS:FIXED_FIELDS + descriptor.value_count]
    if len(scaled) < descriptor.value_count:
        raise MalformedStoredRecord(
            entry,
            f"{descriptor.name} needs {descriptor.value_count} values, got {len(scaled)}",
        )
    if not all(_is_number(x) for x in scaled):
        raise MalformedStoredRecord(entry, "non-numeric value")

    multipliers = descriptor.multipliers
    if uniform_multiplier is not None:
        multipliers = (uniform_multiplier,) * descriptor.value_count

    try:
        values = [value / multiplier for value, multiplier in zip(scaled, multipliers)]
        texts = descriptor.describe(values)
    except (ValueError, OverflowError) as e:
        raise MalformedStoredRecord(entry, f"values out of range: {e}") from e

    return DecodedReading(
        sensor_id=sensor_id,
        type_code=type_code,
        type_name=descriptor.name,
        transport=descriptor.transport,
        position=position,
        combined_id=combine_id(type_code, position),
        values=tuple(values),
        value_names=descriptor.value_names,
        texts=texts,
        active=status == STATUS_ACTIVE,
    )


def decode_record(record: CompactTelemetryRecord) -> DecodedFrame:
    """Rebuild a decoded frame from its compact form.

    Malformed entries are dropped with a warning; the rest survive.
    """
    readings: list[DecodedReading] = []
    for entry in record.readings:
        try:
            readings.append(decode_entry(entry, record.uniform_multiplier))
        except MalformedStoredRecord as e:
            logger.warning(f"Dropping stored reading for {record.device_id}: {e}")

    return DecodedFrame(
        device_tag=DEFAULT_DEVICE_TAG,
        function_code=FUNCTION_READ_REGISTERS,
        device_time=0,
        received_at=record.captured_at,
        readings=readings,
    )


def record_to_json(record: CompactTelemetryRecord) -> str:
    """Serialize the reading arrays as a JSON array of arrays."""
    return json.dumps(record.readings, separators=(",", ":"))


def record_from_json(
    text: str,
    device_id: str,
    captured_at: int,
) -> CompactTelemetryRecord:
    """Parse a stored JSON payload.

    Accepts the plain array of arrays, and the older envelope
    ``{"d": device, "t": ms, "c": count, "s": {...}, "sensors": [...]}`` whose
    values were all scaled by 100.

    Raises:
        MalformedStoredRecord: Payload is not valid JSON or has neither shape.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedStoredRecord(text, str(e)) from e

    uniform_multiplier = None
    if isinstance(data, dict) and isinstance(data.get("sensors"), list):
        device_id = str(data.get("d") or device_id)
        if _is_number(data.get("t")):
            captured_at = int(data["t"])
        uniform_multiplier = LEGACY_MULTIPLIER
        data = data["sensors"]

    if not isinstance(data, list):
        raise MalformedStoredRecord(text, "expected an array of readings")

    return CompactTelemetryRecord(
        device_id=device_id,
        captured_at=captured_at,
        reading_count=len(data),
        readings=data,
        uniform_multiplier=uniform_multiplier,
    )
