"""Binary telemetry frame decoder.

Frame layout (big-endian unless noted):

    offset  size  field
    0       1     device tag
    1       1     function code (0x03 = register read)
    2       4     device capture time (u32)
    6       1     record count N
    7       1     reserved
    8       ...   N records, 10 bytes each (12 for the soil sensor)
    -2      2     CRC-16/MODBUS over all preceding bytes, low byte first

Standard record: sensor id, type code, combined id, position, v1 (u16),
v2 (u16), r1 (u8), r2 (u8). Soil record: same four id bytes followed by four
u16 registers.
"""

import struct
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from fieldtelemetry.core.exceptions import ChecksumMismatch, TruncatedFrame
from fieldtelemetry.protocol.crc import crc16, crc16_trailer
from fieldtelemetry.protocol.sensor_types import (
    STANDARD_RECORD_WIDTH,
    Transport,
    combine_id,
    get_descriptor,
    sensor_name,
    sub_controller_id,
)

HEADER_FORMAT = ">BBIBB"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
CRC_SIZE = 2
MIN_FRAME_SIZE = HEADER_SIZE + CRC_SIZE

STANDARD_RECORD_FORMAT = ">BBBBHHBB"
WIDE_RECORD_FORMAT = ">BBBBHHHH"

DEFAULT_DEVICE_TAG = 0x01
FUNCTION_READ_REGISTERS = 0x03


@dataclass(frozen=True)
class RawSensorRecord:
    """One sensor record as laid out in the frame body."""

    sensor_id: int
    type_code: int
    combined_id: int
    position: int
    registers: tuple[int, ...]

    @classmethod
    def build(
        cls,
        sensor_id: int,
        type_code: int,
        position: int,
        registers: Sequence[int],
        sub_id: int = 0,
    ) -> "RawSensorRecord":
        """Build a record, padding standard records to four registers."""
        regs = tuple(registers) + (0,) * (4 - len(registers))
        return cls(
            sensor_id=sensor_id,
            type_code=type_code,
            combined_id=combine_id(type_code, sub_id),
            position=position,
            registers=regs,
        )

    @property
    def width(self) -> int:
        return get_descriptor(self.type_code).record_width


@dataclass(frozen=True)
class DecodedReading:
    """Physically scaled reading for one sensor record."""

    sensor_id: int
    type_code: int
    type_name: str
    transport: Transport
    position: int
    combined_id: int
    values: tuple[float, ...]
    value_names: tuple[str, ...]
    texts: dict[str, str] = field(default_factory=dict, hash=False)
    active: bool = True

    @property
    def name(self) -> str:
        """Sensor name, e.g. ``SHT20_CH2``."""
        return sensor_name(self.type_name, self.position)

    @property
    def sub_controller_id(self) -> int:
        return sub_controller_id(self.combined_id)

    def value(self, name: str) -> float | None:
        """Get a value by its name."""
        try:
            return self.values[self.value_names.index(name)]
        except ValueError:
            return None

    def value_at(self, index: int) -> float | None:
        if 0 <= index < len(self.values):
            return self.values[index]
        return None


@dataclass
class DecodedFrame:
    """All readings carried by one frame."""

    device_tag: int
    function_code: int
    device_time: int
    received_at: int  # server receipt, Unix ms
    readings: list[DecodedReading] = field(default_factory=list)

    @property
    def transport_counts(self) -> dict[str, int]:
        counts = Counter(r.transport.value for r in self.readings)
        return {t.value: counts.get(t.value, 0) for t in Transport}

    def find_active(self, name: str) -> DecodedReading | None:
        """Get the active reading with the given sensor name."""
        for reading in self.readings:
            if reading.active and reading.name == name:
                return reading
        return None


def is_telemetry_frame(
    buffer: bytes,
    device_tag: int | None = DEFAULT_DEVICE_TAG,
) -> bool:
    """Quick pre-check before attempting a full decode."""
    if len(buffer) < MIN_FRAME_SIZE:
        return False
    if device_tag is not None and buffer[0] != device_tag:
        return False
    return buffer[1] == FUNCTION_READ_REGISTERS


def decode_reading(record: RawSensorRecord) -> DecodedReading:
    """Decode one raw record through its type descriptor.

    Unknown type codes degrade to raw values with generic labels.
    """
    descriptor = get_descriptor(record.type_code)
    if not descriptor.catalogued:
        logger.warning(
            f"Unknown sensor type {record.type_code} "
            f"(sensor {record.sensor_id}, position {record.position}), passing raw values"
        )

    values, texts = descriptor.decode(
        record.registers, record.combined_id, record.position
    )
    return DecodedReading(
        sensor_id=record.sensor_id,
        type_code=record.type_code,
        type_name=descriptor.name,
        transport=descriptor.transport,
        position=record.position,
        combined_id=record.combined_id,
        values=tuple(values),
        value_names=descriptor.value_names,
        texts=texts,
    )


def _parse_records(buffer: bytes, count: int) -> list[RawSensorRecord]:
    body_end = len(buffer) - CRC_SIZE
    offset = HEADER_SIZE
    records: list[RawSensorRecord] = []

    for _ in range(count):
        # Type code sits in the second byte and decides the record width
        if offset + 2 > body_end:
            raise TruncatedFrame(offset + STANDARD_RECORD_WIDTH + CRC_SIZE, len(buffer))
        width = get_descriptor(buffer[offset + 1]).record_width
        if offset + width > body_end:
            raise TruncatedFrame(offset + width + CRC_SIZE, len(buffer))

        fmt = WIDE_RECORD_FORMAT if width > STANDARD_RECORD_WIDTH else STANDARD_RECORD_FORMAT
        sensor_id, type_code, combined, position, *registers = struct.unpack_from(
            fmt, buffer, offset
        )
        records.append(
            RawSensorRecord(
                sensor_id=sensor_id,
                type_code=type_code,
                combined_id=combined,
                position=position,
                registers=tuple(registers),
            )
        )
        offset += width

    return records


def _body_is_whole_records(buffer: bytes) -> bool:
    """Check whether the body between header and trailer ends on a record boundary."""
    body_end = len(buffer) - CRC_SIZE
    offset = HEADER_SIZE
    while offset + 2 <= body_end:
        offset += get_descriptor(buffer[offset + 1]).record_width
    return offset == body_end


def decode_frame(buffer: bytes, received_at: int | None = None) -> DecodedFrame:
    """Decode a binary frame.

    Args:
        buffer: Raw frame bytes including the CRC trailer.
        received_at: Receipt time in Unix ms; defaults to now.

    Raises:
        TruncatedFrame: Buffer is shorter than header plus trailer, or than
            the declared record count requires.
        ChecksumMismatch: CRC trailer does not match.
    """
    if len(buffer) < MIN_FRAME_SIZE:
        raise TruncatedFrame(MIN_FRAME_SIZE, len(buffer))

    device_tag, function_code, device_time, count, _ = struct.unpack_from(
        HEADER_FORMAT, buffer, 0
    )

    received = int.from_bytes(buffer[-CRC_SIZE:], "little")
    calculated = crc16(buffer[:-CRC_SIZE])
    if calculated != received:
        minimum = HEADER_SIZE + count * STANDARD_RECORD_WIDTH + CRC_SIZE
        # A body of whole records means the count byte itself is corrupt
        if len(buffer) < minimum and not _body_is_whole_records(buffer):
            raise TruncatedFrame(minimum, len(buffer), f"{count} records declared")
        raise ChecksumMismatch(calculated, received)

    records = _parse_records(buffer, count)
    readings = [decode_reading(record) for record in records]

    if received_at is None:
        received_at = int(time.time() * 1000)

    return DecodedFrame(
        device_tag=device_tag,
        function_code=function_code,
        device_time=device_time,
        received_at=received_at,
        readings=readings,
    )


def encode_frame(
    records: Sequence[RawSensorRecord],
    device_time: int = 0,
    device_tag: int = DEFAULT_DEVICE_TAG,
    function_code: int = FUNCTION_READ_REGISTERS,
) -> bytes:
    """Build a frame with a valid CRC trailer from raw records."""
    body = bytearray(
        struct.pack(HEADER_FORMAT, device_tag, function_code, device_time, len(records), 0)
    )
    for record in records:
        fmt = WIDE_RECORD_FORMAT if record.width > STANDARD_RECORD_WIDTH else STANDARD_RECORD_FORMAT
        body += struct.pack(
            fmt,
            record.sensor_id,
            record.type_code,
            record.combined_id,
            record.position,
            *record.registers[:4],
        )
    return bytes(body) + crc16_trailer(bytes(body))
