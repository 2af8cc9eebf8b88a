"""CRC-16/MODBUS checksum used by controller frames."""

CRC16_INIT = 0xFFFF
CRC16_POLY = 0xA001  # reflected 0x8005


def crc16(data: bytes) -> int:
    """Calculate CRC-16/MODBUS over ``data``.

    >>> hex(crc16(b"123456789"))
    '0x4b37'
    """
    crc = CRC16_INIT
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ CRC16_POLY
            else:
                crc >>= 1
    return crc


def crc16_trailer(data: bytes) -> bytes:
    """Return the two trailer bytes for ``data``, low byte first."""
    return crc16(data).to_bytes(2, "little")
