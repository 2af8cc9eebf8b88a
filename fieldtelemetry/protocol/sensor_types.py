"""Sensor type catalogue.

Maps the integer type code carried in every frame record to a descriptor
holding the display name, transport class, value names and units, the decode
rule turning raw registers into physical values, and the fixed-point
multipliers used by the storage codec.

Supported types:
    - 1..7: directly wired sensors (SHT20, TSL2591, ADS1115, SCD30,
      DS18B20, BH1750, MH-Z19)
    - 11..15: generic field-bus registers (value / 100)
    - 16: wind direction
    - 17: wind speed
    - 18: precipitation
    - 19: soil sensor (wide record, four 16-bit registers)
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import lru_cache

from fieldtelemetry.core.exceptions import UnknownSensorType
from fieldtelemetry.protocol.derivations import (
    compass_direction,
    moisture_intensity,
    precipitation_status,
    temperature_status,
    wind_scale,
)

STANDARD_RECORD_WIDTH = 10
WIDE_RECORD_WIDTH = 12

# First code of the field-bus range; unknown codes below it count as direct
BUS_CODE_START = 11

TYPE_MASK = 0x1F
SUB_CONTROLLER_SHIFT = 5

Registers = Sequence[int]
DecodeRule = Callable[[Registers, int, int], list[float]]
TextRule = Callable[[Sequence[float]], dict[str, str]]


class SensorKind(IntEnum):
    """Catalogued sensor type codes."""

    SHT20 = 1
    TSL2591 = 2
    ADS1115 = 3
    SCD30 = 4
    DS18B20 = 5
    BH1750 = 6
    MHZ19 = 7
    MODBUS_TH = 11
    MODBUS_PRESSURE = 12
    MODBUS_FLOW = 13
    MODBUS_RELAY = 14
    MODBUS_POWER = 15
    WIND_DIRECTION = 16
    WIND_SPEED = 17
    PRECIPITATION = 18
    SOIL_SENSOR = 19


class Transport(str, Enum):
    """How the sensor is attached to the controller."""

    DIRECT = "direct"  # I2C / 1-wire / UART on the controller board
    BUS = "bus"  # Modbus RTU field bus


@dataclass(frozen=True)
class SensorTypeDescriptor:
    """Immutable description of one sensor type."""

    code: int
    name: str
    transport: Transport
    value_names: tuple[str, ...]
    units: tuple[str, ...]
    multipliers: tuple[int, ...]
    decode_rule: DecodeRule = field(repr=False)
    text_rule: TextRule | None = field(default=None, repr=False)
    wide_record: bool = False
    catalogued: bool = True

    @property
    def record_width(self) -> int:
        """Bytes one record of this type occupies in a frame body."""
        return WIDE_RECORD_WIDTH if self.wide_record else STANDARD_RECORD_WIDTH

    @property
    def value_count(self) -> int:
        return len(self.value_names)

    def decode(
        self,
        registers: Registers,
        combined_id: int,
        position: int,
    ) -> tuple[list[float], dict[str, str]]:
        """Turn raw registers into physical values plus derived labels."""
        values = self.decode_rule(registers, combined_id, position)
        return values, self.describe(values)

    def describe(self, values: Sequence[float]) -> dict[str, str]:
        """Derive text labels from physical values."""
        if self.text_rule is None:
            return {}
        return self.text_rule(values)

    def unit(self, value_index: int) -> str:
        if 0 <= value_index < len(self.units):
            return self.units[value_index]
        return ""


def type_discriminant(combined_id: int) -> int:
    """Low 5 bits of the combined identifier."""
    return combined_id & TYPE_MASK


def sub_controller_id(combined_id: int) -> int:
    """High 3 bits of the combined identifier."""
    return (combined_id >> SUB_CONTROLLER_SHIFT) & 0x07


def combine_id(type_code: int, sub_id: int) -> int:
    """Pack a type code and sub-controller id into one byte."""
    return ((sub_id & 0x07) << SUB_CONTROLLER_SHIFT) | (type_code & TYPE_MASK)


# =============================================================================
# Decode rules
# =============================================================================


def _scaled(*divisors: int) -> DecodeRule:
    """Rule dividing the leading 16-bit registers by fixed divisors."""

    def rule(registers: Registers, combined_id: int, position: int) -> list[float]:
        return [registers[i] / divisor for i, divisor in enumerate(divisors)]

    return rule


def _raw(count: int) -> DecodeRule:
    """Rule passing the leading registers through unscaled."""

    def rule(registers: Registers, combined_id: int, position: int) -> list[float]:
        return [float(registers[i]) for i in range(count)]

    return rule


def _decode_water_quality(registers: Registers, combined_id: int, position: int) -> list[float]:
    # Water temperature is split across the two reserved bytes
    v1, v2, r1, r2 = registers[:4]
    return [v1 / 100, v2 / 10, ((r1 << 8) | r2) / 100]


def _decode_precipitation(registers: Registers, combined_id: int, position: int) -> list[float]:
    v1, v2 = registers[:2]
    status = (v1 >> 12) & 0x0F
    moisture = v1 & 0x0FFF
    temperature = ((v2 >> 8) & 0xFF) - 40
    humidity = v2 & 0xFF
    return [float(status), float(moisture), float(temperature), float(humidity)]


def _decode_soil(registers: Registers, combined_id: int, position: int) -> list[float]:
    humidity, temperature, ec, ph = registers[:4]
    return [ph / 10, ec / 1000, temperature / 10, humidity / 10]


# =============================================================================
# Text rules
# =============================================================================


def _describe_wind_direction(values: Sequence[float]) -> dict[str, str]:
    return {"direction_text": compass_direction(values[0], values[1])}


def _describe_wind_speed(values: Sequence[float]) -> dict[str, str]:
    scale, condition = wind_scale(values[0])
    return {"wind_scale": scale, "wind_condition": condition}


def _describe_precipitation(values: Sequence[float]) -> dict[str, str]:
    status = int(values[0])
    status_text, icon = precipitation_status(status)
    return {
        "precip_status_text": status_text,
        "moisture_intensity": moisture_intensity(status, values[1]),
        "temp_status": temperature_status(values[2]),
        "precip_icon": icon,
    }


# =============================================================================
# Catalogue
# =============================================================================


def _bus_generic(kind: SensorKind) -> SensorTypeDescriptor:
    return SensorTypeDescriptor(
        code=kind.value,
        name=kind.name,
        transport=Transport.BUS,
        value_names=("value1", "value2"),
        units=("", ""),
        multipliers=(100, 100),
        decode_rule=_scaled(100, 100),
    )


SENSOR_TYPES: dict[int, SensorTypeDescriptor] = {
    SensorKind.SHT20: SensorTypeDescriptor(
        code=SensorKind.SHT20,
        name="SHT20",
        transport=Transport.DIRECT,
        value_names=("temperature", "humidity"),
        units=("°C", "%"),
        multipliers=(100, 100),
        decode_rule=_scaled(100, 100),
    ),
    SensorKind.TSL2591: SensorTypeDescriptor(
        code=SensorKind.TSL2591,
        name="TSL2591",
        transport=Transport.DIRECT,
        value_names=("light_level",),
        units=("lux",),
        multipliers=(1,),
        decode_rule=_raw(1),
    ),
    SensorKind.ADS1115: SensorTypeDescriptor(
        code=SensorKind.ADS1115,
        name="ADS1115",
        transport=Transport.DIRECT,
        value_names=("ph", "ec", "water_temp"),
        units=("pH", "mS/cm", "°C"),
        multipliers=(100, 10, 100),
        decode_rule=_decode_water_quality,
    ),
    SensorKind.SCD30: SensorTypeDescriptor(
        code=SensorKind.SCD30,
        name="SCD30",
        transport=Transport.DIRECT,
        value_names=("co2_ppm",),
        units=("ppm",),
        multipliers=(1,),
        decode_rule=_raw(1),
    ),
    SensorKind.DS18B20: SensorTypeDescriptor(
        code=SensorKind.DS18B20,
        name="DS18B20",
        transport=Transport.DIRECT,
        value_names=("temperature",),
        units=("°C",),
        multipliers=(100,),
        decode_rule=_scaled(100),
    ),
    SensorKind.BH1750: SensorTypeDescriptor(
        code=SensorKind.BH1750,
        name="BH1750",
        transport=Transport.DIRECT,
        value_names=("light_level",),
        units=("lux",),
        multipliers=(1,),
        decode_rule=_raw(1),
    ),
    SensorKind.MHZ19: SensorTypeDescriptor(
        code=SensorKind.MHZ19,
        name="MHZ19",
        transport=Transport.DIRECT,
        value_names=("co2_ppm",),
        units=("ppm",),
        multipliers=(1,),
        decode_rule=_raw(1),
    ),
    SensorKind.MODBUS_TH: _bus_generic(SensorKind.MODBUS_TH),
    SensorKind.MODBUS_PRESSURE: _bus_generic(SensorKind.MODBUS_PRESSURE),
    SensorKind.MODBUS_FLOW: _bus_generic(SensorKind.MODBUS_FLOW),
    SensorKind.MODBUS_RELAY: _bus_generic(SensorKind.MODBUS_RELAY),
    SensorKind.MODBUS_POWER: _bus_generic(SensorKind.MODBUS_POWER),
    SensorKind.WIND_DIRECTION: SensorTypeDescriptor(
        code=SensorKind.WIND_DIRECTION,
        name="WIND_DIRECTION",
        transport=Transport.BUS,
        value_names=("gear_direction", "degree_direction"),
        units=("", "°"),
        multipliers=(1, 1),
        decode_rule=_raw(2),
        text_rule=_describe_wind_direction,
    ),
    SensorKind.WIND_SPEED: SensorTypeDescriptor(
        code=SensorKind.WIND_SPEED,
        name="WIND_SPEED",
        transport=Transport.BUS,
        value_names=("wind_speed_ms",),
        units=("m/s",),
        multipliers=(10,),
        decode_rule=_scaled(10),
        text_rule=_describe_wind_speed,
    ),
    SensorKind.PRECIPITATION: SensorTypeDescriptor(
        code=SensorKind.PRECIPITATION,
        name="PRECIPITATION",
        transport=Transport.BUS,
        value_names=("precip_status", "moisture_level", "temperature", "humidity"),
        units=("", "", "°C", "%"),
        multipliers=(1, 1, 1, 1),
        decode_rule=_decode_precipitation,
        text_rule=_describe_precipitation,
    ),
    SensorKind.SOIL_SENSOR: SensorTypeDescriptor(
        code=SensorKind.SOIL_SENSOR,
        name="SOIL_SENSOR",
        transport=Transport.BUS,
        value_names=("soil_ph", "soil_ec", "soil_temperature", "soil_humidity"),
        units=("pH", "dS/m", "°C", "%"),
        multipliers=(10, 1000, 10, 10),
        decode_rule=_decode_soil,
        wide_record=True,
    ),
}


@lru_cache
def unknown_descriptor(code: int) -> SensorTypeDescriptor:
    """Fallback descriptor for codes outside the catalogue: raw values, generic labels."""
    return SensorTypeDescriptor(
        code=code,
        name="UNKNOWN",
        transport=Transport.BUS if code >= BUS_CODE_START else Transport.DIRECT,
        value_names=("value1", "value2"),
        units=("", ""),
        multipliers=(1, 1),
        decode_rule=_raw(2),
        catalogued=False,
    )


def get_descriptor(code: int, strict: bool = False) -> SensorTypeDescriptor:
    """Look up the descriptor for a type code.

    Args:
        code: Type code from the frame record.
        strict: Raise UnknownSensorType instead of returning the fallback.
    """
    descriptor = SENSOR_TYPES.get(code)
    if descriptor is not None:
        return descriptor
    if strict:
        raise UnknownSensorType(code)
    return unknown_descriptor(code)


def is_known_type(code: int) -> bool:
    return code in SENSOR_TYPES


def record_width(code: int) -> int:
    """Record width in bytes for a type code."""
    return get_descriptor(code).record_width


def sensor_name(type_name: str, position: int) -> str:
    """Name assigned to a reading; alert rules target this name."""
    return f"{type_name}_CH{position}"
