"""
Serial Transport for the FDC+ Serial Drive Protocol
===================================================

This module provides the byte transport the protocol engine runs on and
the utilities for finding and opening serial ports:

- Transport abstraction (blocking read with timeout, write)
- pyserial-backed implementation
- Port enumeration and configuration

Serial Port Settings
--------------------
The FDC+ talks to the drive server at one of three rates, 8N1, no flow
control:

- 403.2K: preferred, full-speed operation and the most accurate rate
  on the FDC
- 460.8K: full speed, but about 3.5% off the FDC rate (borderline)
- 230.4K: available on almost every serial port, within 2% of the FDC
  rate, runs at 80%-90% of real disk speed

DTR and RTS are asserted once the port is open.

Read Semantics
--------------
``Transport.read(size, timeout)`` collects bytes until ``size`` bytes
have arrived or until ``timeout`` seconds pass without a new byte. It
returns whatever was collected, possibly nothing. The engine uses one
timeout while waiting for a frame and a shorter one while a track is
streaming.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Final, Optional

import serial
import serial.tools.list_ports

from fdclink.errors import ConnectionError, TransportIOError, TransportNotOpenError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Valid baud rates supported by the FDC+ serial modes
VALID_BAUD_RATES: Final[tuple[int, ...]] = (230400, 403200, 460800)

# Default baud rate (matches the FDC+ preferred rate)
DEFAULT_BAUD_RATE: Final[int] = 403200

# Default read timeout in seconds
DEFAULT_TIMEOUT: Final[float] = 0.5

# USB Vendor IDs for common USB-serial adapters
USB_VENDOR_IDS: Final[dict[int, str]] = {
    0x0403: "FTDI",       # Future Technology Devices International
    0x10C4: "Silicon Labs",  # Silicon Labs CP210x
    0x067B: "Prolific",   # Prolific Technology
    0x1A86: "QinHeng",    # QinHeng Electronics (CH340)
}


# =============================================================================
# Transport Abstraction
# =============================================================================

class Transport(ABC):
    """
    Byte-oriented duplex stream used by the protocol engine.

    Only one transaction may use a transport at a time.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Return True if the transport can be used."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Send bytes. Does not wait for a reply."""

    @abstractmethod
    def read(self, size: int, timeout: float) -> bytes:
        """
        Read up to ``size`` bytes.

        Returns once ``size`` bytes are collected or ``timeout`` seconds
        pass with no new byte. Returns b"" if nothing arrived.

        Raises:
            TransportNotOpenError: If the transport is closed.
            TransportIOError: If the underlying read fails.
        """

    @abstractmethod
    def reset(self) -> None:
        """Discard any buffered input and output."""

    @abstractmethod
    def close(self) -> None:
        """Close the transport. Pending reads are aborted."""


class SerialTransport(Transport):
    """
    Transport over a pyserial port.

    Usage:
        port = open_serial_port('/dev/ttyUSB0', baud_rate=403200)
        transport = SerialTransport(port)
        protocol = FDCProtocol(transport)
    """

    def __init__(self, port: "serial.Serial"):
        """
        Args:
            port: Configured serial port object (see open_serial_port()).
        """
        self.port = port

    @property
    def is_open(self) -> bool:
        return bool(self.port is not None and self.port.is_open)

    def write(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportNotOpenError()
        try:
            self.port.write(data)
            self.port.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"write() error: {e}") from e
        logger.debug("Sent %d bytes: %s", len(data), _hex_preview(data))

    def read(self, size: int, timeout: float) -> bytes:
        if not self.is_open:
            raise TransportNotOpenError()

        old_timeout = self.port.timeout
        self.port.timeout = timeout
        buffer = bytearray()

        try:
            while len(buffer) < size:
                try:
                    chunk = self.port.read(size - len(buffer))
                except (serial.SerialException, OSError) as e:
                    raise TransportIOError(f"read() error: {e}") from e
                if not chunk:
                    break
                buffer.extend(chunk)
        finally:
            if self.port.is_open:
                self.port.timeout = old_timeout

        logger.debug(
            "Received %d of %d bytes: %s",
            len(buffer), size, _hex_preview(bytes(buffer))
        )
        return bytes(buffer)

    def reset(self) -> None:
        if self.is_open:
            self.port.reset_input_buffer()
            self.port.reset_output_buffer()

    def close(self) -> None:
        close_serial_port(self.port)


def _hex_preview(data: bytes, limit: int = 32) -> str:
    """Hex dump of the first ``limit`` bytes, for debug logs."""
    if len(data) > limit:
        return data[:limit].hex() + "..."
    return data.hex()


# =============================================================================
# Port Information
# =============================================================================

@dataclass(frozen=True)
class PortInfo:
    """
    Information about an available serial port.

    Attributes:
        device: System device path (e.g., '/dev/ttyUSB0', 'COM3')
        description: Human-readable description from the driver
        manufacturer: Device manufacturer (if available)
        serial_number: Device serial number (if available)
        vid: USB Vendor ID (None for non-USB ports)
        pid: USB Product ID (None for non-USB ports)
    """

    device: str
    description: str
    manufacturer: Optional[str]
    serial_number: Optional[str]
    vid: Optional[int]
    pid: Optional[int]

    @property
    def is_usb(self) -> bool:
        """Return True if this is a USB-serial adapter."""
        return self.vid is not None

    @property
    def vendor_name(self) -> Optional[str]:
        """Return the vendor name for known USB adapters."""
        if self.vid is not None:
            return USB_VENDOR_IDS.get(self.vid)
        return None

    def __str__(self) -> str:
        parts = [self.device]
        if self.description:
            parts.append(f"- {self.description}")
        if self.vendor_name:
            parts.append(f"({self.vendor_name})")
        return " ".join(parts)


# =============================================================================
# Port Enumeration
# =============================================================================

def list_serial_ports() -> list[PortInfo]:
    """
    List all available serial ports on the system.

    Returns:
        List of PortInfo objects describing available ports.
    """
    ports = []

    for port in serial.tools.list_ports.comports():
        info = PortInfo(
            device=port.device,
            description=port.description or "",
            manufacturer=port.manufacturer,
            serial_number=port.serial_number,
            vid=port.vid,
            pid=port.pid,
        )
        ports.append(info)
        logger.debug(
            "Found port: %s (vid=%s, pid=%s)",
            port.device,
            f"{port.vid:04X}" if port.vid else "N/A",
            f"{port.pid:04X}" if port.pid else "N/A",
        )

    return ports


def format_port_list(ports: list[PortInfo], verbose: bool = False) -> str:
    """
    Format a list of ports for display to the user.

    Args:
        ports: List of PortInfo objects to format.
        verbose: If True, include additional details.

    Returns:
        Formatted string with one port per line.
    """
    if not ports:
        return "No serial ports found."

    lines = []
    for port in ports:
        if verbose:
            line = f"  {port.device}"
            if port.description:
                line += f"\n    Description: {port.description}"
            if port.manufacturer:
                line += f"\n    Manufacturer: {port.manufacturer}"
            if port.vid is not None:
                line += f"\n    USB VID:PID: {port.vid:04X}:{port.pid or 0:04X}"
                if port.vendor_name:
                    line += f" ({port.vendor_name})"
            if port.serial_number:
                line += f"\n    Serial: {port.serial_number}"
            lines.append(line)
        else:
            lines.append(f"  {port}")

    return "\n".join(lines)


# =============================================================================
# Port Configuration
# =============================================================================

def open_serial_port(
    device: str,
    baud_rate: int = DEFAULT_BAUD_RATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> serial.Serial:
    """
    Open and configure a serial port for the FDC+ protocol.

    The port is set to 8 data bits, no parity, 1 stop bit, no flow
    control, with DTR and RTS asserted and both buffers cleared.

    Args:
        device: Serial port device path (e.g., '/dev/ttyUSB0', 'COM3').
        baud_rate: One of VALID_BAUD_RATES. Default is 403200.
        timeout: Initial read timeout in seconds.

    Returns:
        Configured and opened serial.Serial object.

    Raises:
        ConnectionError: If the port cannot be opened or configured.
        ValueError: If baud_rate is not a valid value.

    Note:
        The caller is responsible for closing the port when done.
    """
    if baud_rate not in VALID_BAUD_RATES:
        valid_str = ", ".join(str(b) for b in VALID_BAUD_RATES)
        raise ValueError(
            f"Invalid baud rate: {baud_rate}. Valid rates: {valid_str}"
        )

    logger.info("Opening serial port: %s at %d baud", device, baud_rate)

    try:
        port = serial.Serial(
            port=device,
            baudrate=baud_rate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=timeout,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
        port.dtr = True
        port.rts = True

        port.reset_input_buffer()
        port.reset_output_buffer()

        logger.debug("Port opened: %s (timeout=%.1f)", device, timeout)
        return port

    except serial.SerialException as e:
        error_msg = str(e)

        if "Permission denied" in error_msg:
            raise ConnectionError(
                f"Permission denied accessing {device}. "
                "You may need to add your user to the 'dialout' group: "
                "sudo usermod -a -G dialout $USER"
            )
        elif "No such file" in error_msg or "not found" in error_msg.lower():
            raise ConnectionError(
                f"Serial port not found: {device}. "
                "Use 'fdclink ports' to list available ports."
            )
        elif "busy" in error_msg.lower() or "in use" in error_msg.lower():
            raise ConnectionError(
                f"Serial port {device} is busy. "
                "Close any other programs using the port."
            )
        else:
            raise ConnectionError(f"Could not open serial port '{device}' ({e})")


def close_serial_port(port: Optional["serial.Serial"]) -> None:
    """
    Close a serial port, discarding pending data.

    Errors during close are logged, not raised.
    """
    if port is None:
        return

    try:
        if port.is_open:
            port.reset_input_buffer()
            port.reset_output_buffer()
            port.close()
            logger.debug("Serial port closed")
    except (serial.SerialException, OSError) as e:
        logger.warning("Error closing serial port: %s", e)
