"""
FDC+ Serial Drive Communication Module
======================================

This module implements the serial drive protocol of the Altair FDC+
Enhanced Floppy Disk Controller (serial modes 6 and 7), from the FDC
side: it issues STAT, READ and WRIT commands to a PC-hosted drive server
and checks what comes back.

Protocol Architecture
---------------------
- The **FDC** (this library) initiates every transaction
- The **server** only responds: STAT, WRIT and WSTA frames, and a
  stream of track data for READ

Module Structure
----------------
- **checksum**: 16-bit additive checksum
- **frame**: 10-byte command/response frames
- **drive**: disk geometries and per-session drive state
- **serial**: transport abstraction and serial port utilities
- **engine**: STAT/READ/WRIT transactions

Quick Start
-----------
    from fdclink.comms import FDCProtocol, SerialTransport, open_serial_port

    port = open_serial_port('/dev/ttyUSB0', baud_rate=403200)
    protocol = FDCProtocol(SerialTransport(port))

    status = protocol.stat()
    print(status.mounted_drives)

    protocol.state.select_drive(0)
    result = protocol.read_track(track=5)
    print(result, result.checksum_valid)

    port.close()

Error Handling
--------------
All communication errors inherit from `CommsError`, and parameter errors
from `ParameterError`; both are defined in `fdclink.errors`.

Thread Safety
-------------
The communication classes are NOT thread-safe. Use only from a single
thread, or protect all calls with external synchronization.
"""

# Checksum
from fdclink.comms.checksum import (
    CHECKSUM_SIZE,
    append_checksum,
    checksum16,
    checksum_from_bytes,
    checksum_to_bytes,
    split_block,
    verify_block,
    verify_checksum,
)

# Frames
from fdclink.comms.frame import (
    FRAME_SIZE,
    HEADER_SIZE,
    TAG_READ,
    TAG_STAT,
    TAG_WRIT,
    TAG_WSTA,
    CommandFrame,
    RawFrame,
    ResponseCode,
    ResponseFrame,
    decode_frame,
    encode_frame,
    pack_drive_track,
    unpack_drive_track,
)

# Drive state
from fdclink.comms.drive import (
    EIGHT_INCH,
    GEOMETRIES,
    MAX_DRIVE,
    MINIDISK,
    NO_DRIVE,
    DriveState,
    Geometry,
    get_geometry,
    mounted_drives,
)

# Transport
from fdclink.comms.serial import (
    DEFAULT_BAUD_RATE,
    VALID_BAUD_RATES,
    PortInfo,
    SerialTransport,
    Transport,
    close_serial_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)

# Engine
from fdclink.comms.engine import (
    FDCProtocol,
    StatResult,
    TrackReadResult,
    WriteResult,
)

__all__ = [
    # Checksum
    "CHECKSUM_SIZE",
    "checksum16",
    "checksum_to_bytes",
    "checksum_from_bytes",
    "verify_checksum",
    "append_checksum",
    "split_block",
    "verify_block",
    # Frames
    "FRAME_SIZE",
    "HEADER_SIZE",
    "TAG_STAT",
    "TAG_READ",
    "TAG_WRIT",
    "TAG_WSTA",
    "ResponseCode",
    "RawFrame",
    "CommandFrame",
    "ResponseFrame",
    "encode_frame",
    "decode_frame",
    "pack_drive_track",
    "unpack_drive_track",
    # Drive state
    "MAX_DRIVE",
    "NO_DRIVE",
    "Geometry",
    "EIGHT_INCH",
    "MINIDISK",
    "GEOMETRIES",
    "get_geometry",
    "DriveState",
    "mounted_drives",
    # Transport
    "VALID_BAUD_RATES",
    "DEFAULT_BAUD_RATE",
    "Transport",
    "SerialTransport",
    "PortInfo",
    "list_serial_ports",
    "format_port_list",
    "open_serial_port",
    "close_serial_port",
    # Engine
    "FDCProtocol",
    "StatResult",
    "TrackReadResult",
    "WriteResult",
]
