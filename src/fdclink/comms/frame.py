"""
FDC+ Serial Protocol Frames
===========================

This module implements the fixed-size messages exchanged between the FDC+
controller and the drive server. Commands (FDC -> server) and responses
(server -> FDC) share one 10-byte layout:

    ┌──────────────┬─────────────┬─────────────┬─────────────┐
    │   Bytes 0-3  │  Bytes 4-5  │  Bytes 6-7  │  Bytes 8-9  │
    │   tag (ASCII)│  field 1    │  field 2    │  checksum   │
    └──────────────┴─────────────┴─────────────┴─────────────┘

- All words are little-endian
- The checksum is the 16-bit sum of bytes 0-7
- Field 1 is Parameter 1 in a command and the Response Code in a response
- Field 2 is Parameter 2 in a command and the Response Data in a response

Tags
----
- FDC -> server: STAT, READ, WRIT
- Server -> FDC: STAT, WRIT, WSTA

READ/WRIT Parameter 1
---------------------
The drive number lives in the most significant nibble and the track
number in the lower 12 bits:

    15    12 11                     0
    ┌───────┬────────────────────────┐
    │ drive │         track          │
    └───────┴────────────────────────┘

References
----------
- Altair FDC+ serial drive protocol (FDC+ manual, serial modes 6 and 7)
"""

import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Final, Union

from fdclink.comms.checksum import checksum16

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Constants
# =============================================================================

# Total frame size including checksum
FRAME_SIZE: Final[int] = 10

# Bytes covered by the checksum
HEADER_SIZE: Final[int] = 8

# Tag length (not NUL-terminated)
TAG_SIZE: Final[int] = 4

# Message tags
TAG_STAT: Final[str] = "STAT"
TAG_READ: Final[str] = "READ"
TAG_WRIT: Final[str] = "WRIT"
TAG_WSTA: Final[str] = "WSTA"

# Bit layout of READ/WRIT Parameter 1
DRIVE_SHIFT: Final[int] = 12
TRACK_MASK: Final[int] = 0x0FFF
MAX_ENCODED_DRIVE: Final[int] = 0x0F

_FRAME_STRUCT: Final[struct.Struct] = struct.Struct("<4sHHH")
_HEADER_STRUCT: Final[struct.Struct] = struct.Struct("<4sHH")


# =============================================================================
# Response Codes
# =============================================================================

class ResponseCode(IntEnum):
    """
    Response codes carried in field 1 of WRIT and WSTA responses.

    The STAT response also has a response code field, but it is ignored.
    """

    OK = 0x0000              # OK
    NOT_READY = 0x0001       # e.g. write request to unmounted drive
    CHECKSUM_ERROR = 0x0002  # e.g. on the block of write data
    WRITE_ERROR = 0x0003     # e.g. write to disk failed

    @classmethod
    def describe(cls, code: int) -> str:
        """Get human-readable description of a response code."""
        descriptions = {
            0: "OK",
            1: "NOT READY",
            2: "CHECKSUM ERROR",
            3: "WRITE ERROR",
        }
        return descriptions.get(code, "UNKNOWN")

    @classmethod
    def lookup(cls, code: int) -> Union["ResponseCode", int]:
        """
        Map a raw code to a ResponseCode member.

        Unknown codes are returned unchanged as plain integers so they are
        never confused with one of the defined codes.
        """
        try:
            return cls(code)
        except ValueError:
            return code


# =============================================================================
# Raw Codec
# =============================================================================

def _tag_bytes(tag: Union[str, bytes]) -> bytes:
    """Validate a tag and return its 4 wire bytes."""
    if isinstance(tag, str):
        try:
            raw = tag.encode("ascii")
        except UnicodeEncodeError:
            raise ValueError(f"Tag must be ASCII, got {tag!r}")
    else:
        raw = bytes(tag)
        if any(byte > 0x7F for byte in raw):
            raise ValueError(f"Tag must be ASCII, got {tag!r}")
    if len(raw) != TAG_SIZE:
        raise ValueError(
            f"Tag must be exactly {TAG_SIZE} characters, got {tag!r}"
        )
    return raw


def _check_word(name: str, value: int) -> None:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"{name} must be 0-65535, got {value}")


def encode_frame(tag: Union[str, bytes], field1: int, field2: int) -> bytes:
    """
    Serialize a frame for transmission.

    Args:
        tag: 4-character ASCII tag. Tags are never padded or truncated.
        field1: First 16-bit field (Parameter 1 / Response Code).
        field2: Second 16-bit field (Parameter 2 / Response Data).

    Returns:
        Complete 10-byte frame with checksum.

    Raises:
        ValueError: If the tag is not 4 ASCII characters or a field does
                    not fit in 16 bits.
    """
    raw_tag = _tag_bytes(tag)
    _check_word("field1", field1)
    _check_word("field2", field2)

    header = _HEADER_STRUCT.pack(raw_tag, field1, field2)
    checksum = checksum16(header)
    frame = header + struct.pack("<H", checksum)

    logger.debug(
        "Encoded frame: tag=%s field1=%04X field2=%04X checksum=%04X",
        raw_tag.decode("latin-1"), field1, field2, checksum
    )
    return frame


@dataclass(frozen=True)
class RawFrame:
    """
    A decoded frame with no direction-specific labelling.

    Attributes:
        tag: 4-character tag (latin-1 decoded, so any byte is accepted)
        field1: First 16-bit field
        field2: Second 16-bit field
        checksum: Checksum as received
        checksum_valid: True if the received checksum matches bytes 0-7
    """

    tag: str
    field1: int
    field2: int
    checksum: int
    checksum_valid: bool

    @property
    def calculated_checksum(self) -> int:
        """Checksum recomputed over the decoded header."""
        header = _HEADER_STRUCT.pack(
            self.tag.encode("latin-1"), self.field1, self.field2
        )
        return checksum16(header)


def decode_frame(data: bytes) -> RawFrame:
    """
    Parse a received 10-byte frame.

    Decoding never rejects the content of a frame. A bad checksum is
    reported through ``checksum_valid`` and an unexpected tag is left to
    the caller.

    Args:
        data: Exactly FRAME_SIZE bytes.

    Returns:
        Decoded RawFrame.

    Raises:
        ValueError: If data is not exactly FRAME_SIZE bytes long.
    """
    if len(data) != FRAME_SIZE:
        raise ValueError(
            f"Frame must be {FRAME_SIZE} bytes, got {len(data)}"
        )

    raw_tag, field1, field2, checksum = _FRAME_STRUCT.unpack(bytes(data))
    calculated = checksum16(data, HEADER_SIZE)
    frame = RawFrame(
        tag=raw_tag.decode("latin-1"),
        field1=field1,
        field2=field2,
        checksum=checksum,
        checksum_valid=(checksum == calculated),
    )

    logger.debug(
        "Decoded frame: tag=%r field1=%04X field2=%04X checksum=%04X (%s)",
        frame.tag, field1, field2, checksum,
        "valid" if frame.checksum_valid else f"calculated {calculated:04X}"
    )
    return frame


# =============================================================================
# Direction-Specific Frames
# =============================================================================

@dataclass(frozen=True)
class CommandFrame:
    """
    Command sent by the FDC to the server.

    Example:
        frame = CommandFrame(TAG_READ, pack_drive_track(1, 10), 4384)
        port.write(frame.to_bytes())
    """

    tag: str
    param1: int
    param2: int

    def to_bytes(self) -> bytes:
        """Serialize the command with its checksum."""
        return encode_frame(self.tag, self.param1, self.param2)

    @classmethod
    def from_bytes(cls, data: bytes) -> "CommandFrame":
        """
        Parse a command, as a server would.

        Raises:
            ValueError: If the frame checksum is invalid.
        """
        raw = decode_frame(data)
        if not raw.checksum_valid:
            raise ValueError(
                f"Invalid command checksum: received {raw.checksum:04X}, "
                f"calculated {raw.calculated_checksum:04X}"
            )
        return cls(tag=raw.tag, param1=raw.field1, param2=raw.field2)


@dataclass(frozen=True)
class ResponseFrame:
    """
    Response sent by the server to the FDC.

    Attributes:
        tag: Response tag (STAT, WRIT or WSTA)
        code: Response Code (ignored for STAT)
        data: Response Data (drive mount bitmap for STAT)
        checksum: Received checksum (computed when built locally)
        checksum_valid: True if the checksum matched on reception
    """

    tag: str
    code: int
    data: int = 0
    checksum: int = 0
    checksum_valid: bool = True

    @property
    def status(self) -> Union[ResponseCode, int]:
        """Response code as a ResponseCode, or a plain int if unknown."""
        return ResponseCode.lookup(self.code)

    def to_bytes(self) -> bytes:
        """Serialize the response with a freshly computed checksum."""
        return encode_frame(self.tag, self.code, self.data)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ResponseFrame":
        """Parse a received response. Never fails on content."""
        raw = decode_frame(data)
        return cls(
            tag=raw.tag,
            code=raw.field1,
            data=raw.field2,
            checksum=raw.checksum,
            checksum_valid=raw.checksum_valid,
        )


# =============================================================================
# Field Helpers
# =============================================================================

def pack_drive_track(drive: int, track: int) -> int:
    """
    Build READ/WRIT Parameter 1 from a drive and track number.

    Drive numbers above 15 cannot be represented on the wire.

    Raises:
        ValueError: If drive or track doesn't fit its bit field.

    Example:
        >>> hex(pack_drive_track(3, 1234))
        '0x34d2'
    """
    if not 0 <= drive <= MAX_ENCODED_DRIVE:
        raise ValueError(f"Drive must be 0-{MAX_ENCODED_DRIVE}, got {drive}")
    if not 0 <= track <= TRACK_MASK:
        raise ValueError(f"Track must be 0-{TRACK_MASK}, got {track}")
    return (drive << DRIVE_SHIFT) | track


def unpack_drive_track(param1: int) -> tuple[int, int]:
    """Split READ/WRIT Parameter 1 into (drive, track)."""
    return (param1 >> DRIVE_SHIFT) & MAX_ENCODED_DRIVE, param1 & TRACK_MASK
