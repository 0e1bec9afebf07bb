"""
FDC+ Serial Drive Protocol Engine
=================================

This module drives the FDC side of the FDC+ serial drive protocol. All
transactions are initiated by the FDC; the drive server only answers.

Transactions
------------
**STAT** - report selection and head status, learn which drives are
mounted:

```
FDC                                   SERVER
 | ── STAT drive|heads<<8, 0 ───────→  |
 | ←──────── STAT code, mount bitmap ─ |   code is ignored
```

**READ** - read one track:

```
FDC                                   SERVER
 | ── READ track|drive<<12, len ────→  |
 | ←──── track data (len B) + cksum ── |   continuous stream
```

**WRIT** - write one track, only after the server grants permission:

```
FDC                                   SERVER
 | ── WRIT track|drive<<12, len ────→  |
 | ←─────────────────── WRIT code, - ─ |   code != OK: stop here
 | ── track data (len B) + cksum ───→  |
 | ←─────────────────── WSTA code, - ─ |   final status
```

Timeouts
--------
Two timeout classes apply:

- FRAME_TIMEOUT (0.5 s) while waiting for a complete 10-byte response
- DATA_TIMEOUT (0.1 s) per read while a track is streaming; once the
  transfer has started, even a short silence means the sender stopped

Error Recovery
--------------
Responses with a bad checksum are rejected. The engine never retries;
the protocol leaves retrying to the initiator, so the caller re-issues
the whole transaction if it wants to. Input still buffered from an
earlier transaction is discarded before every command is sent.
"""

import logging
from dataclasses import dataclass
from typing import Final, Optional, Union

from fdclink.comms.checksum import checksum16, checksum_from_bytes, checksum_to_bytes
from fdclink.comms.drive import MAX_DRIVE, DriveState, Geometry, mounted_drives
from fdclink.comms.frame import (
    FRAME_SIZE,
    TAG_READ,
    TAG_STAT,
    TAG_WRIT,
    TAG_WSTA,
    CommandFrame,
    ResponseCode,
    ResponseFrame,
    pack_drive_track,
)
from fdclink.comms.serial import Transport
from fdclink.errors import (
    ChecksumError,
    InvalidDriveError,
    InvalidTrackError,
    ResponseTimeoutError,
    ServerStatusError,
    TagMismatchError,
    TransportNotOpenError,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Transaction Results
# =============================================================================

@dataclass(frozen=True)
class StatResult:
    """
    Outcome of a STAT transaction.

    Attributes:
        mount_bitmap: One bit per drive, 1 = image mounted
        response_code: Response code as received (ignored by the FDC)
    """

    mount_bitmap: int
    response_code: int = 0

    @property
    def mounted_drives(self) -> list[int]:
        return mounted_drives(self.mount_bitmap)

    def is_mounted(self, drive: int) -> bool:
        if not 0 <= drive < 16:
            return False
        return bool(self.mount_bitmap & (1 << drive))

    def __str__(self) -> str:
        return f"Received 'STAT' response 0x{self.mount_bitmap:04x}"


@dataclass(frozen=True)
class TrackReadResult:
    """
    Outcome of a complete READ transaction.

    A checksum mismatch is reported, not raised: the track did arrive,
    and whether to re-read it is the caller's decision.

    Attributes:
        drive: Drive that was read
        track: Track that was read
        data: Track data, without the checksum trailer
        received_checksum: Checksum sent by the server
        calculated_checksum: Checksum of ``data``
    """

    drive: int
    track: int
    data: bytes
    received_checksum: int
    calculated_checksum: int

    @property
    def checksum_valid(self) -> bool:
        return self.received_checksum == self.calculated_checksum

    @property
    def byte_count(self) -> int:
        return len(self.data)

    def __str__(self) -> str:
        message = f"Received {self.byte_count} byte track"
        if not self.checksum_valid:
            message += (
                f" (checksum error: received {self.received_checksum:04X}, "
                f"calculated {self.calculated_checksum:04X})"
            )
        return message


@dataclass(frozen=True)
class WriteResult:
    """
    Outcome of a WRIT transaction that reached the WSTA stage.

    Attributes:
        drive: Drive that was written
        track: Track that was written
        status: WSTA response code; a ResponseCode, or a plain int when
                the server sent a code outside the defined set
    """

    drive: int
    track: int
    status: Union[ResponseCode, int]

    @property
    def ok(self) -> bool:
        return self.status == ResponseCode.OK

    @property
    def known_status(self) -> bool:
        return isinstance(self.status, ResponseCode)

    def __str__(self) -> str:
        return f"Received WSTA {ResponseCode.describe(self.status)} response"


# =============================================================================
# Protocol Engine
# =============================================================================

class FDCProtocol:
    """
    FDC+ serial drive protocol engine.

    Runs one transaction at a time over a Transport. The engine owns a
    DriveState for the session; READ and WRIT take their parameters from
    it unless they are passed explicitly.

    Usage:
        port = open_serial_port('/dev/ttyUSB0')
        protocol = FDCProtocol(SerialTransport(port))

        print(protocol.stat())                  # mount status
        result = protocol.read_track(drive=0, track=2)
        protocol.write_track(result.data, drive=1, track=2)
    """

    # Wait for a complete 10-byte response (seconds)
    FRAME_TIMEOUT: Final[float] = 0.5

    # Silence that ends a track data stream (seconds)
    DATA_TIMEOUT: Final[float] = 0.1

    def __init__(
        self,
        transport: Transport,
        state: Optional[DriveState] = None,
        frame_timeout: Optional[float] = None,
        data_timeout: Optional[float] = None,
    ):
        """
        Initialize the protocol engine.

        Args:
            transport: Open transport to the drive server.
            state: Session state. A fresh DriveState if not given.
            frame_timeout: Override FRAME_TIMEOUT.
            data_timeout: Override DATA_TIMEOUT.
        """
        self.transport = transport
        self.state = state if state is not None else DriveState()
        self.frame_timeout = (
            frame_timeout if frame_timeout is not None else self.FRAME_TIMEOUT
        )
        self.data_timeout = (
            data_timeout if data_timeout is not None else self.DATA_TIMEOUT
        )

    # -------------------------------------------------------------------------
    # STAT
    # -------------------------------------------------------------------------

    def stat(self) -> StatResult:
        """
        Run a STAT transaction.

        Sends the selected drive and head-load flags from the session state
        and stores the returned mount bitmap in it.

        Returns:
            StatResult with the server's drive mount bitmap.

        Raises:
            TransportNotOpenError: If the transport is closed.
            TransportIOError: On read/write failure.
            ResponseTimeoutError: If no complete response arrives.
            ChecksumError: If the response checksum is invalid.
            TagMismatchError: If the response is not a STAT.
        """
        self._require_open()

        command = CommandFrame(TAG_STAT, self.state.stat_param1(), 0)
        logger.debug("STAT param1=%04X", command.param1)
        self._send_command(command)

        response = self._receive_response(TAG_STAT)
        self.state.mount_bitmap = response.data

        result = StatResult(mount_bitmap=response.data, response_code=response.code)
        logger.debug("STAT mounted drives: %s", result.mounted_drives)
        return result

    # -------------------------------------------------------------------------
    # READ
    # -------------------------------------------------------------------------

    def read_track(
        self,
        drive: Optional[int] = None,
        track: Optional[int] = None,
        geometry: Optional[Geometry] = None,
    ) -> TrackReadResult:
        """
        Run a READ transaction.

        Args:
            drive: Drive to read. Default: the selected drive.
            track: Track to read. Default: the current track.
            geometry: Disk geometry. Default: the active geometry.

        Returns:
            TrackReadResult with the track data and checksum validity.

        Raises:
            InvalidDriveError: If the drive is not 0..MAX_DRIVE-1. Nothing
                               is transmitted.
            InvalidTrackError: If the track is outside the geometry.
            ResponseTimeoutError: If the track stream stops early. The
                                  exception carries the byte counts.
            TransportNotOpenError, TransportIOError: Transport failures.
        """
        drive, track, geometry = self._resolve(drive, track, geometry)
        self._require_open()

        command = CommandFrame(
            TAG_READ, pack_drive_track(drive, track), geometry.track_len
        )
        logger.info("READ drive %d track %d (%d bytes)", drive, track, geometry.track_len)
        self._send_command(command)
        self.state.track = track

        block = self.transport.read(geometry.block_len, self.data_timeout)
        if len(block) < geometry.block_len:
            logger.warning(
                "READ stopped after %d of %d bytes", len(block), geometry.block_len
            )
            raise ResponseTimeoutError(
                received=len(block),
                expected=geometry.block_len,
                stage="track data",
            )

        data = block[:geometry.track_len]
        result = TrackReadResult(
            drive=drive,
            track=track,
            data=data,
            received_checksum=checksum_from_bytes(block[geometry.track_len:]),
            calculated_checksum=checksum16(data),
        )
        if not result.checksum_valid:
            logger.warning(
                "Track checksum mismatch: received %04X, calculated %04X",
                result.received_checksum, result.calculated_checksum
            )
        return result

    # -------------------------------------------------------------------------
    # WRIT
    # -------------------------------------------------------------------------

    def write_track(
        self,
        data: bytes,
        drive: Optional[int] = None,
        track: Optional[int] = None,
        geometry: Optional[Geometry] = None,
    ) -> WriteResult:
        """
        Run a WRIT transaction.

        Phase 1 asks the server for permission. Only an OK response lets
        phase 2 send the track; phase 3 collects the final WSTA status.

        Args:
            data: Exactly ``geometry.track_len`` bytes of track data.
            drive: Drive to write. Default: the selected drive.
            track: Track to write. Default: the current track.
            geometry: Disk geometry. Default: the active geometry.

        Returns:
            WriteResult carrying the WSTA response code verbatim.

        Raises:
            ValueError: If data is not exactly one track long.
            InvalidDriveError, InvalidTrackError: Bad parameters. Nothing
                                                  is transmitted.
            ServerStatusError: Subclass matching a non-OK WRIT response.
                               No track data is sent.
            TagMismatchError: WRIT or WSTA response has another tag.
            ChecksumError: A response checksum is invalid.
            ResponseTimeoutError: A response did not arrive.
            TransportNotOpenError, TransportIOError: Transport failures.
        """
        drive, track, geometry = self._resolve(drive, track, geometry)
        if len(data) != geometry.track_len:
            raise ValueError(
                f"Track data must be {geometry.track_len} bytes, got {len(data)}"
            )
        self._require_open()

        # Phase 1: request permission
        command = CommandFrame(
            TAG_WRIT, pack_drive_track(drive, track), geometry.track_len
        )
        logger.info("WRIT drive %d track %d (%d bytes)", drive, track, geometry.track_len)
        self._send_command(command)
        self.state.track = track

        response = self._receive_response(TAG_WRIT)
        if response.code != ResponseCode.OK:
            logger.warning(
                "WRIT refused: %s (%04X)",
                ResponseCode.describe(response.code), response.code
            )
            raise ServerStatusError.from_code(response.code, TAG_WRIT)

        # Phase 2: send the track with its checksum trailer
        checksum = checksum16(data)
        logger.debug("Sending track data, checksum %04X", checksum)
        self.transport.write(bytes(data) + checksum_to_bytes(checksum))

        # Phase 3: final status
        response = self._receive_response(TAG_WSTA)
        result = WriteResult(drive=drive, track=track, status=response.status)
        if result.ok:
            logger.info("WRIT complete")
        else:
            logger.warning("WSTA status: %s", ResponseCode.describe(response.code))
        return result

    # -------------------------------------------------------------------------
    # Frame I/O
    # -------------------------------------------------------------------------

    def _send_command(self, command: CommandFrame) -> None:
        # Late bytes of an earlier, failed transaction must not be read
        # as the answer to this one
        self.transport.reset()
        self.transport.write(command.to_bytes())

    def _receive_response(self, expected_tag: str) -> ResponseFrame:
        """
        Wait for one response frame and check it.

        Raises:
            ResponseTimeoutError: Fewer than FRAME_SIZE bytes arrived.
            ChecksumError: Checksum invalid.
            TagMismatchError: Tag is not ``expected_tag``.
        """
        raw = self.transport.read(FRAME_SIZE, self.frame_timeout)
        if len(raw) < FRAME_SIZE:
            raise ResponseTimeoutError(
                received=len(raw),
                expected=FRAME_SIZE,
                stage=f"'{expected_tag}' response",
            )

        response = ResponseFrame.from_bytes(raw)
        if not response.checksum_valid:
            raise ChecksumError(
                expected=response.checksum,
                actual=checksum16(raw, FRAME_SIZE - 2),
                what=f"'{response.tag}' response",
            )
        if response.tag != expected_tag:
            raise TagMismatchError(expected_tag, response.tag)
        return response

    # -------------------------------------------------------------------------
    # Parameter Handling
    # -------------------------------------------------------------------------

    def _require_open(self) -> None:
        if not self.transport.is_open:
            raise TransportNotOpenError()

    def _resolve(
        self,
        drive: Optional[int],
        track: Optional[int],
        geometry: Optional[Geometry],
    ) -> tuple[int, int, Geometry]:
        """Fill in defaults from the session state and validate."""
        if drive is None:
            drive = self.state.selected_drive
        if track is None:
            track = self.state.track
        if geometry is None:
            geometry = self.state.geometry

        if drive is None or not 0 <= drive < MAX_DRIVE:
            raise InvalidDriveError(drive, MAX_DRIVE)
        if not geometry.is_valid_track(track):
            raise InvalidTrackError(track, geometry.track_max)
        return drive, track, geometry
