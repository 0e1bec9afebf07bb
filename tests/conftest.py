"""
fdclink Test Configuration
==========================

pytest fixtures shared by the fdclink tests.

It provides:
- FakeSerialPort: stands in for serial.Serial, with scripted input
- DriveServer: minimal drive server that answers STAT/READ/WRIT
- Fixtures wiring the two together behind a SerialTransport
"""

from collections import deque
from typing import Callable, Optional

import pytest
import serial

from fdclink.comms.checksum import append_checksum, verify_block
from fdclink.comms.engine import FDCProtocol
from fdclink.comms.frame import (
    FRAME_SIZE,
    TAG_READ,
    TAG_STAT,
    TAG_WRIT,
    TAG_WSTA,
    CommandFrame,
    ResponseCode,
    encode_frame,
    unpack_drive_track,
)
from fdclink.comms.serial import SerialTransport


# ═══════════════════════════════════════════════════════════════════════════════
# FAKE SERIAL PORT
# ═══════════════════════════════════════════════════════════════════════════════


class FakeSerialPort:
    """
    In-memory replacement for serial.Serial.

    Bytes queued with feed() are returned by read() in the chunks they
    were queued in (split when a read asks for fewer bytes). An empty
    queue behaves like a read timeout. The timeout in effect for every
    read is recorded in ``read_timeouts``.
    """

    def __init__(self) -> None:
        self.is_open = True
        self.timeout = 1.0
        self.writes: list[bytes] = []
        self.read_timeouts: list[float] = []
        self.on_write: Optional[Callable[[bytes], list[bytes]]] = None
        self.fail_reads = False
        self._rx: deque[bytes] = deque()

    def feed(self, *chunks: bytes) -> None:
        for chunk in chunks:
            self._rx.append(bytes(chunk))

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        self.writes.append(bytes(data))
        if self.on_write is not None:
            self.feed(*self.on_write(bytes(data)))
        return len(data)

    def flush(self) -> None:
        pass

    def read(self, size: int) -> bytes:
        if not self.is_open or self.fail_reads:
            raise serial.SerialException("device reports readiness to read but returned no data")
        self.read_timeouts.append(self.timeout)
        if not self._rx:
            return b""
        chunk = self._rx.popleft()
        if len(chunk) > size:
            self._rx.appendleft(chunk[size:])
            chunk = chunk[:size]
        return chunk

    def reset_input_buffer(self) -> None:
        self._rx.clear()

    def reset_output_buffer(self) -> None:
        pass

    def close(self) -> None:
        self.is_open = False


# ═══════════════════════════════════════════════════════════════════════════════
# FAKE DRIVE SERVER
# ═══════════════════════════════════════════════════════════════════════════════


class DriveServer:
    """
    Scripted drive server.

    Answers commands written to a FakeSerialPort. The knobs below make it
    misbehave in the ways the engine has to cope with.
    """

    def __init__(self) -> None:
        self.mount_bitmap = 0
        self.tracks: dict[tuple[int, int], bytes] = {}
        self.commands: list[CommandFrame] = []
        self.written: dict[tuple[int, int], bytes] = {}

        self.writ_code = ResponseCode.OK
        self.wsta_code = ResponseCode.OK
        self.read_truncate: Optional[int] = None
        self.corrupt_track_checksum = False
        self.corrupt_responses = False
        self.tag_overrides: dict[str, str] = {}
        self.silent = False
        self.chunk_size = 512

        self._pending_write: Optional[tuple[int, int, int]] = None

    def handle(self, data: bytes) -> list[bytes]:
        if self.silent:
            return []

        if self._pending_write is not None:
            return self._receive_block(data)

        assert len(data) == FRAME_SIZE, f"unexpected {len(data)} byte write"
        command = CommandFrame.from_bytes(data)
        self.commands.append(command)

        if command.tag == TAG_STAT:
            return [self._response(TAG_STAT, 0, self.mount_bitmap)]

        if command.tag == TAG_READ:
            drive, track = unpack_drive_track(command.param1)
            track_data = self.tracks.get((drive, track), bytes(command.param2))
            block = bytearray(append_checksum(track_data))
            if self.corrupt_track_checksum:
                block[-1] ^= 0xFF
            if self.read_truncate is not None:
                block = block[:self.read_truncate]
            return [
                bytes(block[i:i + self.chunk_size])
                for i in range(0, len(block), self.chunk_size)
            ]

        if command.tag == TAG_WRIT:
            drive, track = unpack_drive_track(command.param1)
            if self.writ_code == ResponseCode.OK:
                self._pending_write = (drive, track, command.param2)
            return [self._response(TAG_WRIT, self.writ_code, 0)]

        raise AssertionError(f"unexpected command {command.tag!r}")

    def _receive_block(self, block: bytes) -> list[bytes]:
        drive, track, length = self._pending_write
        self._pending_write = None
        assert len(block) == length + 2
        if verify_block(block):
            self.written[(drive, track)] = block[:length]
            code = self.wsta_code
        else:
            code = ResponseCode.CHECKSUM_ERROR
        return [self._response(TAG_WSTA, code, 0)]

    def _response(self, tag: str, code: int, data: int) -> bytes:
        frame = bytearray(encode_frame(self.tag_overrides.get(tag, tag), code, data))
        if self.corrupt_responses:
            frame[8] ^= 0x01
        return bytes(frame)


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def server() -> DriveServer:
    """Fixture: a drive server with nothing mounted."""
    return DriveServer()


@pytest.fixture
def fake_port(server: DriveServer) -> FakeSerialPort:
    """Fixture: fake serial port answered by ``server``."""
    port = FakeSerialPort()
    port.on_write = server.handle
    return port


@pytest.fixture
def transport(fake_port: FakeSerialPort) -> SerialTransport:
    """Fixture: SerialTransport over the fake port."""
    return SerialTransport(fake_port)


@pytest.fixture
def protocol(transport: SerialTransport) -> FDCProtocol:
    """Fixture: protocol engine with a fresh DriveState."""
    return FDCProtocol(transport)
