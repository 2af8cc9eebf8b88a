"""Tests for the CRC and binary frame decoder."""

import pytest

from fieldtelemetry.core.exceptions import ChecksumMismatch, TruncatedFrame
from fieldtelemetry.protocol.crc import crc16, crc16_trailer
from fieldtelemetry.protocol.frame import (
    RawSensorRecord,
    decode_frame,
    encode_frame,
    is_telemetry_frame,
)
from fieldtelemetry.protocol.sensor_types import SensorKind, Transport

COUNT_OFFSET = 6


def _sht20(temperature_raw: int = 2550, humidity_raw: int = 6000, position: int = 1):
    return RawSensorRecord.build(
        sensor_id=1,
        type_code=SensorKind.SHT20,
        position=position,
        registers=[temperature_raw, humidity_raw],
    )


def _soil():
    # humidity, temperature, ec, ph registers
    return RawSensorRecord.build(
        sensor_id=4,
        type_code=SensorKind.SOIL_SENSOR,
        position=2,
        registers=[355, 218, 1250, 65],
    )


def test_crc16_reference_values():
    """Test CRC-16/MODBUS against published check values."""
    assert crc16(b"123456789") == 0x4B37
    assert crc16(bytes([0x01, 0x03, 0x00, 0x00, 0x00, 0x0A])) == 0xCDC5
    assert crc16_trailer(bytes([0x01, 0x03, 0x00, 0x00, 0x00, 0x0A])) == b"\xc5\xcd"


def test_decode_sht20_frame():
    """Test decoding a single SHT20 record."""
    frame_bytes = encode_frame([_sht20()], device_time=1_700_000_000)
    assert len(frame_bytes) == 20

    frame = decode_frame(frame_bytes, received_at=123)

    assert frame.device_tag == 0x01
    assert frame.function_code == 0x03
    assert frame.device_time == 1_700_000_000
    assert frame.received_at == 123
    assert len(frame.readings) == 1

    reading = frame.readings[0]
    assert reading.type_name == "SHT20"
    assert reading.name == "SHT20_CH1"
    assert reading.transport == Transport.DIRECT
    assert reading.values == (25.5, 60.0)
    assert reading.value("humidity") == 60.0
    assert reading.value("co2_ppm") is None


def test_decode_mixed_frame_with_wide_soil_record():
    """Test a frame mixing standard and wide records."""
    wind = RawSensorRecord.build(
        sensor_id=3, type_code=SensorKind.WIND_SPEED, position=1, registers=[55]
    )
    frame_bytes = encode_frame([_sht20(), _soil(), wind])
    assert len(frame_bytes) == 8 + 10 + 12 + 10 + 2

    frame = decode_frame(frame_bytes)

    soil = frame.readings[1]
    assert soil.name == "SOIL_SENSOR_CH2"
    assert soil.values == (6.5, 1.25, 21.8, 35.5)
    assert soil.value_names == ("soil_ph", "soil_ec", "soil_temperature", "soil_humidity")

    speed = frame.readings[2]
    assert speed.values == (5.5,)
    assert speed.texts["wind_scale"] == "moderate_breeze"

    assert frame.transport_counts == {"direct": 1, "bus": 2}


def test_decode_water_quality_reserved_bytes():
    """Test ADS1115 water temperature split across the reserved bytes."""
    record = RawSensorRecord.build(
        sensor_id=2,
        type_code=SensorKind.ADS1115,
        position=1,
        registers=[712, 15, 0x09, 0xC4],
    )
    reading = decode_frame(encode_frame([record])).readings[0]

    assert reading.values == (7.12, 1.5, 25.0)


def test_decode_precipitation_bit_fields():
    """Test precipitation status, moisture, temperature and humidity unpacking."""
    record = RawSensorRecord.build(
        sensor_id=5,
        type_code=SensorKind.PRECIPITATION,
        position=1,
        registers=[(1 << 12) | 2000, ((25 + 40) << 8) | 70],
    )
    reading = decode_frame(encode_frame([record])).readings[0]

    assert reading.values == (1.0, 2000.0, 25.0, 70.0)
    assert reading.texts == {
        "precip_status_text": "rain",
        "moisture_intensity": "moderate",
        "temp_status": "optimal",
        "precip_icon": "rain",
    }


def test_decode_wind_direction_text():
    record = RawSensorRecord.build(
        sensor_id=6,
        type_code=SensorKind.WIND_DIRECTION,
        position=1,
        registers=[3, 135],
    )
    reading = decode_frame(encode_frame([record])).readings[0]

    assert reading.values == (3.0, 135.0)
    assert reading.texts["direction_text"] == "SE"


def test_sub_controller_id_and_position_naming():
    """Test combined id packing and reading names."""
    record = RawSensorRecord.build(
        sensor_id=9,
        type_code=SensorKind.MODBUS_TH,
        position=4,
        registers=[2312, 5540],
        sub_id=3,
    )
    reading = decode_frame(encode_frame([record])).readings[0]

    assert reading.sub_controller_id == 3
    assert reading.name == "MODBUS_TH_CH4"
    assert reading.transport == Transport.BUS
    assert reading.values == (23.12, 55.4)


@pytest.mark.parametrize("code,transport", [(9, Transport.DIRECT), (25, Transport.BUS)])
def test_unknown_type_passes_raw_values(code: int, transport: Transport):
    """Test unknown type codes decode to raw values instead of failing."""
    record = RawSensorRecord.build(sensor_id=7, type_code=code, position=1, registers=[7, 8])
    frame = decode_frame(encode_frame([_sht20(), record]))

    assert len(frame.readings) == 2
    unknown = frame.readings[1]
    assert unknown.type_name == "UNKNOWN"
    assert unknown.transport == transport
    assert unknown.values == (7.0, 8.0)


def test_single_byte_corruption_is_detected():
    """Test every flipped byte, count field included, fails the CRC."""
    frame_bytes = encode_frame([_sht20(), _soil()])

    for index in range(len(frame_bytes)):
        corrupted = bytearray(frame_bytes)
        corrupted[index] ^= 0xFF
        with pytest.raises(ChecksumMismatch):
            decode_frame(bytes(corrupted))


def test_inflated_count_reports_checksum_mismatch():
    """Test a count byte claiming more records than present fails the CRC."""
    corrupted = bytearray(encode_frame([_sht20()]))
    corrupted[COUNT_OFFSET] = 5

    with pytest.raises(ChecksumMismatch):
        decode_frame(bytes(corrupted))


def test_frame_cut_mid_record_reports_truncation():
    frame_bytes = encode_frame([_sht20(), _soil()])

    with pytest.raises(TruncatedFrame) as exc_info:
        decode_frame(frame_bytes[:-5])

    assert exc_info.value.expected == 30
    assert exc_info.value.actual == 27


def test_too_short_buffer():
    frame_bytes = encode_frame([_sht20()])

    with pytest.raises(TruncatedFrame) as exc_info:
        decode_frame(frame_bytes[:9])

    assert exc_info.value.expected == 10
    assert exc_info.value.actual == 9


def test_declared_count_beyond_body_with_valid_crc():
    """Test truncation is reported when the CRC is valid but records are missing."""
    body = bytearray(encode_frame([_sht20()])[:-2])
    body[COUNT_OFFSET] = 2
    frame_bytes = bytes(body) + crc16_trailer(bytes(body))

    with pytest.raises(TruncatedFrame):
        decode_frame(frame_bytes)


def test_is_telemetry_frame():
    frame_bytes = encode_frame([_sht20()])

    assert is_telemetry_frame(frame_bytes)
    assert not is_telemetry_frame(frame_bytes[:5])
    assert not is_telemetry_frame(b"\x02" + frame_bytes[1:])
    assert not is_telemetry_frame(frame_bytes[:1] + b"\x04" + frame_bytes[2:])
    assert is_telemetry_frame(b"\x02" + frame_bytes[1:], device_tag=None)
