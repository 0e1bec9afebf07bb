"""
fdclink - Serial Drive Protocol Tools for the Altair FDC+
=========================================================

This package talks to an FDC+ serial drive server the way the FDC+
Enhanced Floppy Disk Controller does in serial modes 6 and 7. It can be
used to check that a drive server implementation behaves correctly, or to
read and write individual tracks by hand.

Main Components
---------------
- **comms**: protocol engine, frames, checksum and serial transport
- **config**: defaults and environment overrides
- **cli**: the ``fdclink`` command-line tool

Quick Start
-----------
    >>> from fdclink import FDCProtocol, SerialTransport, open_serial_port
    >>> port = open_serial_port("/dev/ttyUSB0")
    >>> protocol = FDCProtocol(SerialTransport(port))
    >>> protocol.stat().mounted_drives
    [0, 2]

Or use the command-line tool:
    $ fdclink --port /dev/ttyUSB0 stat
    $ fdclink --port /dev/ttyUSB0 read 0 5 --output track05.bin
"""

__version__ = "1.0.0"

from fdclink.comms import (
    EIGHT_INCH,
    MAX_DRIVE,
    MINIDISK,
    CommandFrame,
    DriveState,
    FDCProtocol,
    Geometry,
    ResponseCode,
    ResponseFrame,
    SerialTransport,
    StatResult,
    TrackReadResult,
    Transport,
    WriteResult,
    checksum16,
    close_serial_port,
    decode_frame,
    encode_frame,
    list_serial_ports,
    open_serial_port,
)
from fdclink.config import LinkConfig
from fdclink.errors import (
    ChecksumError,
    CommsError,
    ConnectionError as FDCConnectionError,  # Avoid collision with builtin
    FDCError,
    InvalidDriveError,
    InvalidTrackError,
    ParameterError,
    ProtocolError,
    ResponseTimeoutError,
    ServerStatusError,
    TagMismatchError,
    TransportIOError,
    TransportNotOpenError,
)

__all__ = [
    "__version__",
    # Protocol
    "FDCProtocol",
    "StatResult",
    "TrackReadResult",
    "WriteResult",
    "CommandFrame",
    "ResponseFrame",
    "ResponseCode",
    "encode_frame",
    "decode_frame",
    "checksum16",
    # State
    "DriveState",
    "Geometry",
    "EIGHT_INCH",
    "MINIDISK",
    "MAX_DRIVE",
    # Transport
    "Transport",
    "SerialTransport",
    "list_serial_ports",
    "open_serial_port",
    "close_serial_port",
    # Configuration
    "LinkConfig",
    # Errors
    "FDCError",
    "ParameterError",
    "InvalidDriveError",
    "InvalidTrackError",
    "CommsError",
    "FDCConnectionError",
    "TransportNotOpenError",
    "TransportIOError",
    "ResponseTimeoutError",
    "ProtocolError",
    "TagMismatchError",
    "ChecksumError",
    "ServerStatusError",
]
