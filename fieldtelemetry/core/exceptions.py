"""Exception hierarchy for telemetry decoding and storage."""


class TelemetryError(Exception):
    """Base exception for all telemetry errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class DecodeError(TelemetryError):
    """Binary frame could not be decoded."""

    pass


class TruncatedFrame(DecodeError):
    """Frame is shorter than its header or declared body requires."""

    def __init__(self, expected: int, actual: int, details: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        message = f"Truncated frame (need {expected} bytes, got {actual})"
        super().__init__(message, details)


class ChecksumMismatch(DecodeError):
    """CRC trailer does not match the frame content."""

    def __init__(self, expected: int, received: int, details: str | None = None) -> None:
        self.expected = expected
        self.received = received
        message = f"CRC mismatch (calculated 0x{expected:04X}, received 0x{received:04X})"
        super().__init__(message, details)


class UnknownSensorType(TelemetryError):
    """Type code is not in the sensor catalogue."""

    def __init__(self, type_code: int, details: str | None = None) -> None:
        self.type_code = type_code
        super().__init__(f"Unknown sensor type code {type_code}", details)


class MalformedStoredRecord(TelemetryError):
    """Stored compact reading cannot be decoded."""

    def __init__(self, entry: object, details: str | None = None) -> None:
        self.entry = entry
        super().__init__(f"Malformed stored reading {entry!r}", details)
