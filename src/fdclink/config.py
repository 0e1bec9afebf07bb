"""
fdclink Configuration
=====================

Defaults for the serial link and the STAT poll loop. Configuration can
come from:
- Default values (defined here)
- Environment variables
- Command-line options (applied by the CLI on top of the above)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from fdclink.comms.drive import GEOMETRIES, Geometry, get_geometry
from fdclink.comms.engine import FDCProtocol
from fdclink.comms.serial import DEFAULT_BAUD_RATE, VALID_BAUD_RATES

logger = logging.getLogger(__name__)

# Shortest STAT poll interval accepted (milliseconds)
MIN_STAT_INTERVAL_MS = 100


@dataclass
class LinkConfig:
    """
    Link configuration.

    Attributes:
        port: Serial device (None: must be given on the command line)
        baud_rate: One of VALID_BAUD_RATES (default: 403200)
        disk: Geometry name, "8in" or "minidisk" (default: "8in")
        stat_interval_ms: STAT poll interval (default: 100, minimum 100)
        frame_timeout: Wait for a 10-byte response, seconds (default: 0.5)
        data_timeout: Silence ending a track stream, seconds (default: 0.1)
    """

    port: Optional[str] = None
    baud_rate: int = DEFAULT_BAUD_RATE
    disk: str = "8in"
    stat_interval_ms: int = MIN_STAT_INTERVAL_MS
    frame_timeout: float = FDCProtocol.FRAME_TIMEOUT
    data_timeout: float = FDCProtocol.DATA_TIMEOUT

    @property
    def geometry(self) -> Geometry:
        return get_geometry(self.disk)

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "LinkConfig":
        """
        Create LinkConfig from environment variables.

        Environment variables (all optional):
            FDCLINK_PORT: Serial device
            FDCLINK_BAUD: Baud rate (230400, 403200 or 460800)
            FDCLINK_DISK: Disk type ("8in" or "minidisk")
            FDCLINK_STAT_INTERVAL: STAT poll interval in milliseconds
                (at least MIN_STAT_INTERVAL_MS)

        Invalid values are logged and ignored; the default stays in effect.
        """
        config = cls()

        if port := os.environ.get("FDCLINK_PORT"):
            config.port = port

        if baud := os.environ.get("FDCLINK_BAUD"):
            try:
                rate = int(baud)
            except ValueError:
                rate = None
            if rate in VALID_BAUD_RATES:
                config.baud_rate = rate
            else:
                logger.warning("Ignoring invalid FDCLINK_BAUD: %s", baud)

        if disk := os.environ.get("FDCLINK_DISK"):
            if disk.lower() in GEOMETRIES:
                config.disk = disk.lower()
            else:
                logger.warning("Ignoring invalid FDCLINK_DISK: %s", disk)

        if interval := os.environ.get("FDCLINK_STAT_INTERVAL"):
            try:
                interval_ms = int(interval)
            except ValueError:
                interval_ms = None
            if interval_ms is not None and interval_ms >= MIN_STAT_INTERVAL_MS:
                config.stat_interval_ms = interval_ms
            else:
                logger.warning("Ignoring invalid FDCLINK_STAT_INTERVAL: %s", interval)

        return config
