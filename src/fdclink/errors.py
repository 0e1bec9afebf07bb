"""
fdclink Error Hierarchy
=======================

This module defines the exception hierarchy for fdclink. All exceptions
inherit from FDCError, allowing callers to catch every library error with
a single except clause if desired.

Exception Hierarchy
-------------------
FDCError (base)
├── ParameterError (caller-supplied operation parameters)
│   ├── InvalidDriveError - drive number outside 0..MAX_DRIVE-1
│   └── InvalidTrackError - track number outside the geometry
└── CommsError (serial communication)
    ├── ConnectionError - cannot open or use the serial port
    │   └── TransportNotOpenError - transport closed
    ├── TransportIOError - read/write failed at the I/O level
    ├── TimeoutError - no (complete) response in time
    │   └── ResponseTimeoutError - partial or empty response
    ├── ProtocolError - unexpected message
    │   └── TagMismatchError - response tag is not the expected one
    ├── ChecksumError - received checksum does not match the data
    └── ServerStatusError - server answered with a non-OK response code
        ├── ServerNotReadyError
        ├── ServerChecksumError
        ├── ServerWriteError
        └── UnknownResponseCodeError

Every failure terminates only the current transaction. The transport and
the drive state stay usable, and retrying is always up to the caller.
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class FDCError(Exception):
    """
    Base exception for all fdclink errors.

        try:
            protocol.read_track()
        except FDCError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Parameter Exceptions
# =============================================================================

class ParameterError(FDCError):
    """Operation parameter rejected before anything was transmitted."""
    pass


class InvalidDriveError(ParameterError):
    """
    Drive number cannot be used for READ or WRIT.

    Raised when no drive is selected or the selected drive is outside
    the range supported by the controller.
    """

    def __init__(self, drive: Optional[int], max_drive: int, message: str = ""):
        self.drive = drive
        self.max_drive = max_drive
        if not message:
            if drive is None:
                message = "Invalid drive number: no drive selected"
            else:
                message = (
                    f"Invalid drive number: {drive} "
                    f"(valid: 0-{max_drive - 1})"
                )
        super().__init__(message)


class InvalidTrackError(ParameterError):
    """Track number is outside the active geometry."""

    def __init__(self, track: int, track_max: int, message: str = ""):
        self.track = track
        self.track_max = track_max
        if not message:
            message = (
                f"Invalid track number: {track} "
                f"(valid: 0-{track_max - 1})"
            )
        super().__init__(message)


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(FDCError):
    """Base exception for serial communication errors."""
    pass


class ConnectionError(CommsError):
    """
    Cannot connect to the serial port.

    Raised when:
    - Serial port not found
    - Permission denied
    - Port busy
    """
    pass


class TransportNotOpenError(ConnectionError):
    """Transaction attempted on a closed transport."""

    def __init__(self, message: str = "Serial port not open"):
        super().__init__(message)


class TransportIOError(CommsError):
    """
    Read or write failed at the I/O level.

    This is distinct from a timeout: the port itself reported an error,
    for example because the adapter was unplugged or the port was closed
    while a transaction was waiting.
    """
    pass


class TimeoutError(CommsError):
    """
    Communication timeout error.

    Note:
        This is an fdclink-specific TimeoutError, distinct from the
        Python builtin TimeoutError. It inherits from CommsError
        for consistent error handling.
    """
    pass


class ResponseTimeoutError(TimeoutError):
    """
    Response ended before the expected number of bytes arrived.

    Attributes:
        received: Number of bytes actually received (may be 0)
        expected: Number of bytes the transaction expected
        stage: Which wait timed out (e.g. "STAT response", "track data")
    """

    def __init__(self, received: int, expected: int, stage: str = "response"):
        self.received = received
        self.expected = expected
        self.stage = stage
        if received == 0:
            message = f"No {stage} received"
        else:
            message = f"Received {received} of {expected} bytes"
        super().__init__(message)


class ProtocolError(CommsError):
    """
    Protocol error.

    Raised when the server sends a message that does not fit the
    current transaction.
    """
    pass


class TagMismatchError(ProtocolError):
    """Response frame carries a different tag than the one expected."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Did not receive '{expected}' response '{actual}'"
        )


class ChecksumError(CommsError):
    """
    Checksum verification failed.

    Raised when the checksum carried by a received frame doesn't match
    the checksum calculated over its contents. The engine never retries;
    re-issuing the transaction is up to the caller.
    """

    def __init__(self, expected: int, actual: int, what: str = "frame"):
        self.expected = expected
        self.actual = actual
        self.what = what
        super().__init__(
            f"Checksum error on {what}: "
            f"received {expected:04X}, calculated {actual:04X}"
        )


# =============================================================================
# Server Response Codes
# =============================================================================

class ServerStatusError(CommsError):
    """
    Server answered with a response code other than OK.

    Use ServerStatusError.from_code() to get the subclass matching a
    response code.

    Attributes:
        code: Raw response code from the frame
        tag: Tag of the frame that carried the code
    """

    label = "UNKNOWN"

    def __init__(self, code: int, tag: str = "WRIT"):
        self.code = code
        self.tag = tag
        super().__init__(f"Received {self.label} {tag} response")

    @classmethod
    def from_code(cls, code: int, tag: str = "WRIT") -> "ServerStatusError":
        """Create the exception subclass matching a response code."""
        error_class = _STATUS_ERRORS.get(code, UnknownResponseCodeError)
        return error_class(code, tag)


class ServerNotReadyError(ServerStatusError):
    """Server is not ready (e.g. write request to an unmounted drive)."""

    label = "NOT READY"


class ServerChecksumError(ServerStatusError):
    """Server rejected the block of write data because of its checksum."""

    label = "CHECKSUM ERROR"


class ServerWriteError(ServerStatusError):
    """Server failed to write the track (e.g. write to disk failed)."""

    label = "WRITE ERROR"


class UnknownResponseCodeError(ServerStatusError):
    """Response code outside the defined set."""

    def __init__(self, code: int, tag: str = "WRIT"):
        self.label = f"UNKNOWN (0x{code:04X})"
        super().__init__(code, tag)


_STATUS_ERRORS: dict[int, type[ServerStatusError]] = {
    1: ServerNotReadyError,
    2: ServerChecksumError,
    3: ServerWriteError,
}
