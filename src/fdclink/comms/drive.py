"""
Drive and Track State
=====================

Session parameters shared between the protocol engine and whatever
front end drives it: the selected drive, per-drive head-load flags, the
current track, the active disk geometry and the last mount status
reported by the server.

Geometries
----------
Two disk types are supported. Both use 137-byte sectors:

    ┌──────────┬──────────────┬─────────────┬────────┐
    │ Disk     │ Sectors/trk  │ Track bytes │ Tracks │
    ├──────────┼──────────────┼─────────────┼────────┤
    │ 8 inch   │      32      │    4384     │   77   │
    │ Minidisk │      16      │    2192     │   35   │
    └──────────┴──────────────┴─────────────┴────────┘

STAT Parameter 1
----------------
The selected drive goes in the low byte (0xFF when no drive is selected)
and the head-load flags of drives 0-3 go in bits 0-3 of the high byte:

    15      12 11     8 7              0
    ┌─────────┬────────┬────────────────┐
    │ unused  │ heads  │ selected drive │
    └─────────┴────────┴────────────────┘
"""

from dataclasses import dataclass, field
from typing import Final, Optional

# =============================================================================
# Constants
# =============================================================================

# Number of drives supported by the controller
MAX_DRIVE: Final[int] = 4

# Wire value for "no drive selected"
NO_DRIVE: Final[int] = 0xFF

SECTOR_LEN: Final[int] = 137


# =============================================================================
# Geometry
# =============================================================================

@dataclass(frozen=True)
class Geometry:
    """
    Disk geometry preset.

    Attributes:
        name: Short name used on the command line
        track_len: Bytes per track (excluding the checksum trailer)
        track_max: Number of tracks; valid tracks are 0..track_max-1
    """

    name: str
    track_len: int
    track_max: int

    @property
    def block_len(self) -> int:
        """Bytes of a track data block including its checksum."""
        return self.track_len + 2

    def is_valid_track(self, track: int) -> bool:
        return 0 <= track < self.track_max

    def __str__(self) -> str:
        return f"{self.name} ({self.track_max} tracks, {self.track_len} bytes/track)"


EIGHT_INCH: Final[Geometry] = Geometry("8in", SECTOR_LEN * 32, 77)
MINIDISK: Final[Geometry] = Geometry("minidisk", SECTOR_LEN * 16, 35)

GEOMETRIES: Final[dict[str, Geometry]] = {
    EIGHT_INCH.name: EIGHT_INCH,
    MINIDISK.name: MINIDISK,
}


def get_geometry(name: str) -> Geometry:
    """
    Look up a geometry preset by name.

    Raises:
        ValueError: If the name is unknown.
    """
    try:
        return GEOMETRIES[name.lower()]
    except KeyError:
        valid = ", ".join(GEOMETRIES)
        raise ValueError(f"Unknown disk type: {name}. Valid types: {valid}")


# =============================================================================
# Drive State
# =============================================================================

@dataclass
class DriveState:
    """
    Per-session drive and track state.

    Front ends change the state through the setters between transactions.
    The protocol engine refreshes ``mount_bitmap`` on every STAT and sets
    ``track`` to the requested track on every READ or WRIT.

    Example:
        state = DriveState()
        state.select_drive(1)
        state.set_head_loaded(1, True)
        state.stat_param1()   # 0x0201
    """

    selected_drive: Optional[int] = None
    head_loaded: list[bool] = field(
        default_factory=lambda: [False] * MAX_DRIVE
    )
    track: int = 0
    geometry: Geometry = EIGHT_INCH
    mount_bitmap: int = 0

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    def select_drive(self, drive: Optional[int]) -> None:
        """
        Select a drive, or deselect with None.

        Any byte value is accepted here so that out-of-range drives can be
        sent in STAT; READ and WRIT reject drives >= MAX_DRIVE.

        Raises:
            ValueError: If drive doesn't fit in a byte, or is 0xFF.
        """
        if drive is not None and not 0 <= drive < NO_DRIVE:
            raise ValueError(f"Drive must be 0-254 or None, got {drive}")
        self.selected_drive = drive

    def set_head_loaded(self, drive: int, loaded: bool) -> None:
        """
        Set the head-load flag of one drive.

        Raises:
            ValueError: If drive is outside 0..MAX_DRIVE-1.
        """
        if not 0 <= drive < MAX_DRIVE:
            raise ValueError(f"Drive must be 0-{MAX_DRIVE - 1}, got {drive}")
        self.head_loaded[drive] = bool(loaded)

    def set_track(self, track: int) -> None:
        """
        Set the current track.

        Raises:
            ValueError: If the track is outside the active geometry.
        """
        if not self.geometry.is_valid_track(track):
            raise ValueError(
                f"Track must be 0-{self.geometry.track_max - 1}, got {track}"
            )
        self.track = track

    def set_geometry(self, geometry: Geometry) -> None:
        """
        Change the active geometry.

        The current track is clamped so it stays valid.
        """
        self.geometry = geometry
        if self.track >= geometry.track_max:
            self.track = geometry.track_max - 1

    # -------------------------------------------------------------------------
    # Wire Encoding
    # -------------------------------------------------------------------------

    @property
    def head_bits(self) -> int:
        """Head-load flags packed one bit per drive."""
        bits = 0
        for drive, loaded in enumerate(self.head_loaded[:MAX_DRIVE]):
            if loaded:
                bits |= 1 << drive
        return bits

    def stat_param1(self) -> int:
        """Build STAT Parameter 1 (drive in low byte, heads in high byte)."""
        drive = NO_DRIVE if self.selected_drive is None else self.selected_drive
        return (self.head_bits << 8) | (drive & 0xFF)

    # -------------------------------------------------------------------------
    # Mount Status
    # -------------------------------------------------------------------------

    def is_mounted(self, drive: int) -> bool:
        """
        Return True if the last STAT reported ``drive`` as mounted.

        Drives outside the 16-bit bitmap are never mounted.
        """
        if not 0 <= drive < 16:
            return False
        return bool(self.mount_bitmap & (1 << drive))

    @property
    def mounted_drives(self) -> list[int]:
        """Drives reported as mounted by the last STAT."""
        return mounted_drives(self.mount_bitmap)


def mounted_drives(bitmap: int) -> list[int]:
    """
    List the drives set in a 16-bit mount bitmap.

    Example:
        >>> mounted_drives(0b0101)
        [0, 2]
    """
    return [drive for drive in range(16) if bitmap & (1 << drive)]
