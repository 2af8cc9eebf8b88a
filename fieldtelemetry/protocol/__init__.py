"""Telemetry wire protocol: sensor catalogue, frame decoder and storage codec.

Everything here is pure (no I/O) and safe to call concurrently.
"""

from fieldtelemetry.protocol.codec import (
    UNIFIED_PROTOCOL,
    CompactTelemetryRecord,
    decode_record,
    encode_record,
    record_from_json,
    record_to_json,
)
from fieldtelemetry.protocol.crc import crc16
from fieldtelemetry.protocol.frame import (
    DecodedFrame,
    DecodedReading,
    RawSensorRecord,
    decode_frame,
    encode_frame,
    is_telemetry_frame,
)
from fieldtelemetry.protocol.sensor_types import (
    SENSOR_TYPES,
    SensorKind,
    SensorTypeDescriptor,
    Transport,
    get_descriptor,
)

__all__ = [
    "CompactTelemetryRecord",
    "DecodedFrame",
    "DecodedReading",
    "RawSensorRecord",
    "SENSOR_TYPES",
    "SensorKind",
    "SensorTypeDescriptor",
    "Transport",
    "UNIFIED_PROTOCOL",
    "crc16",
    "decode_frame",
    "decode_record",
    "encode_frame",
    "encode_record",
    "get_descriptor",
    "is_telemetry_frame",
    "record_from_json",
    "record_to_json",
]
