"""
16-bit Additive Checksum for the FDC+ Serial Protocol
=====================================================

This module implements the checksum used by every message of the FDC+
serial drive protocol. The same rule covers the 8-byte header of a
command/response frame and a whole block of track data.

Technical Details
-----------------
- The checksum is the unsigned sum of all bytes, modulo 65536
- Overflow wraps; there is no saturation and no sign extension
- On the wire the checksum is 2 bytes, little-endian
- The checksum never covers itself

Track Data Block
----------------
Track data travels as ``track_len`` bytes immediately followed by the
checksum of those bytes:

    ┌──────────────────────────────┬──────────┐
    │   track data (track_len B)   │ checksum │
    │                              │ LSB  MSB │
    └──────────────────────────────┴──────────┘

Usage
-----
    from fdclink.comms.checksum import checksum16, append_checksum

    checksum16(b"STAT\\xff\\x00\\x00\\x00")   # 0x023B
    block = append_checksum(track_data)       # data + 2-byte trailer
"""

from typing import Final, Optional

# =============================================================================
# Constants
# =============================================================================

# Mask for 16-bit values
CHECKSUM_MASK: Final[int] = 0xFFFF

# Size of the checksum on the wire
CHECKSUM_SIZE: Final[int] = 2


# =============================================================================
# Checksum Calculation
# =============================================================================

def checksum16(data: bytes, length: Optional[int] = None) -> int:
    """
    Calculate the 16-bit additive checksum of a byte range.

    Args:
        data: Input bytes.
        length: Number of leading bytes to include. Default is all of
                ``data``.

    Returns:
        16-bit checksum (0x0000 to 0xFFFF).

    Example:
        >>> checksum16(bytes([0xFF, 0x01]))
        256
        >>> checksum16(bytes([0xFF] * 258))
        254
    """
    if length is not None:
        data = data[:length]
    return sum(data) & CHECKSUM_MASK


def checksum_to_bytes(value: int) -> bytes:
    """
    Convert a checksum to little-endian bytes for transmission.

    Example:
        >>> checksum_to_bytes(0x1234)
        b'4\\x12'
    """
    return bytes([value & 0xFF, (value >> 8) & 0xFF])


def checksum_from_bytes(data: bytes) -> int:
    """
    Convert little-endian bytes to a checksum value.

    Args:
        data: Two bytes, LSB first. Extra bytes are ignored.

    Raises:
        ValueError: If data is less than 2 bytes.
    """
    if len(data) < CHECKSUM_SIZE:
        raise ValueError(f"Checksum requires 2 bytes, got {len(data)}")
    return data[0] | (data[1] << 8)


def verify_checksum(data: bytes, expected: int) -> bool:
    """Return True if the checksum of ``data`` equals ``expected``."""
    return checksum16(data) == expected


# =============================================================================
# Track Data Blocks
# =============================================================================

def append_checksum(data: bytes) -> bytes:
    """
    Build a data block: ``data`` followed by its little-endian checksum.
    """
    return bytes(data) + checksum_to_bytes(checksum16(data))


def split_block(block: bytes) -> tuple[bytes, int, int]:
    """
    Split a data block into its data and checksums.

    Args:
        block: Data bytes with the 2-byte checksum trailer.

    Returns:
        Tuple of (data, received_checksum, calculated_checksum).

    Raises:
        ValueError: If the block is too short to carry a trailer.
    """
    if len(block) < CHECKSUM_SIZE:
        raise ValueError(f"Block too short: {len(block)} bytes")
    data = bytes(block[:-CHECKSUM_SIZE])
    received = checksum_from_bytes(block[-CHECKSUM_SIZE:])
    return data, received, checksum16(data)


def verify_block(block: bytes) -> bool:
    """
    Verify a data block that has its checksum appended.

    Returns False for blocks too short to carry a checksum.
    """
    if len(block) < CHECKSUM_SIZE:
        return False
    _, received, calculated = split_block(block)
    return received == calculated
