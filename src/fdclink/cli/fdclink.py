"""
fdclink - FDC+ Serial Drive Command-Line Interface
==================================================

This module implements the command-line interface for exercising an FDC+
serial drive server. It plays the part of the FDC: every command sends one
transaction and prints the outcome.

Usage Examples
--------------
List available serial ports:
    $ fdclink ports

Ask the server which drives are mounted:
    $ fdclink -p /dev/ttyUSB0 stat
    $ fdclink -p /dev/ttyUSB0 stat --drive 0 --head-loaded 0 --watch

Read a track (optionally saving the raw bytes):
    $ fdclink -p /dev/ttyUSB0 read 0 2 --output track02.bin

Write a track:
    $ fdclink -p /dev/ttyUSB0 write 1 2 track02.bin
    $ fdclink -p /dev/ttyUSB0 --disk minidisk write 1 2 --fill 0xE5

Defaults can also come from the environment (FDCLINK_PORT, FDCLINK_BAUD,
FDCLINK_DISK, FDCLINK_STAT_INTERVAL).

Exit Codes
----------
0 - Success
1 - Transaction failed or server reported an error
2 - Invalid arguments or configuration error
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click

from fdclink import __version__
from fdclink.cli.errors import ExitCode, handle_cli_exception
from fdclink.comms import (
    GEOMETRIES,
    MAX_DRIVE,
    VALID_BAUD_RATES,
    DriveState,
    FDCProtocol,
    SerialTransport,
    close_serial_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)
from fdclink.config import MIN_STAT_INTERVAL_MS, LinkConfig
from fdclink.errors import ChecksumError, FDCError, ProtocolError, TimeoutError

# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Holds the link configuration (environment defaults overridden by
    command-line options) and verbosity.
    """

    def __init__(self) -> None:
        self.config = LinkConfig.from_env()
        self.verbose: bool = False

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def require_port(self) -> str:
        if not self.config.port:
            click.echo("Error: No serial port specified.", err=True)
            click.echo("Use --port, FDCLINK_PORT, or 'fdclink ports' to find available ports.", err=True)
            raise SystemExit(ExitCode.INVALID_ARGS)
        return self.config.port

    @contextmanager
    def protocol(self, state: Optional[DriveState] = None) -> Iterator[FDCProtocol]:
        """Open the serial port and yield a protocol engine on it."""
        device = self.require_port()
        if state is None:
            state = DriveState()
        state.set_geometry(self.config.geometry)

        serial_port = open_serial_port(device, baud_rate=self.config.baud_rate)
        try:
            yield FDCProtocol(
                SerialTransport(serial_port),
                state=state,
                frame_timeout=self.config.frame_timeout,
                data_timeout=self.config.data_timeout,
            )
        finally:
            close_serial_port(serial_port)


pass_context = click.make_pass_decorator(Context, ensure=True)


def parse_byte(value: str) -> int:
    """Parse a byte value given in decimal or 0x-prefixed hex."""
    try:
        number = int(value, 0)
    except ValueError:
        raise click.BadParameter(f"not a number: {value}")
    if not 0 <= number <= 0xFF:
        raise click.BadParameter(f"must be 0-255, got {value}")
    return number


def format_mount_status(mount_bitmap: int) -> str:
    """One line per drive: mounted or not."""
    lines = []
    for drive in range(MAX_DRIVE):
        mounted = bool(mount_bitmap & (1 << drive))
        lines.append(f"  Drive {drive}: {'mounted' if mounted else '-'}")
    return "\n".join(lines)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-p", "--port",
    type=str,
    default=None,
    help="Serial port device (default: FDCLINK_PORT)",
)
@click.option(
    "-b", "--baud",
    type=click.Choice([str(b) for b in VALID_BAUD_RATES]),
    default=None,
    help="Baud rate (default: 403200)",
)
@click.option(
    "-d", "--disk",
    type=click.Choice(list(GEOMETRIES)),
    default=None,
    help="Disk type (default: 8in)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.version_option(version=__version__, prog_name="fdclink")
@pass_context
def main(
    ctx: Context,
    port: Optional[str],
    baud: Optional[str],
    disk: Optional[str],
    verbose: bool,
) -> None:
    """
    Exercise an FDC+ serial drive server.

    fdclink sends the commands the FDC+ controller sends in serial
    modes 6 and 7 (STAT, READ, WRIT) and reports what the server
    answers.

    Use 'fdclink ports' to list available serial ports.
    """
    if port:
        ctx.config.port = port
    if baud:
        ctx.config.baud_rate = int(baud)
    if disk:
        ctx.config.disk = disk
    ctx.verbose = verbose
    ctx.setup_logging()


# =============================================================================
# Ports Command
# =============================================================================

@main.command()
@click.option(
    "--detailed",
    is_flag=True,
    help="Show detailed port information",
)
def ports(detailed: bool) -> None:
    """
    List available serial ports.

    Example:
        fdclink ports
        fdclink ports --detailed
    """
    port_list = list_serial_ports()

    if not port_list:
        click.echo("No serial ports found.")
        click.echo("\nTips:")
        click.echo("  - Connect your USB-serial adapter")
        click.echo("  - On Linux, ensure you have permission (dialout group)")
        return

    click.echo("Available serial ports:")
    click.echo(format_port_list(port_list, verbose=detailed))


# =============================================================================
# STAT Command
# =============================================================================

@main.command()
@click.option(
    "--drive",
    type=click.IntRange(0, 254),
    default=None,
    help="Selected drive reported to the server (default: none)",
)
@click.option(
    "--head-loaded", "head_loaded",
    type=click.IntRange(0, MAX_DRIVE - 1),
    multiple=True,
    help="Report the head of this drive as loaded (repeatable)",
)
@click.option(
    "--watch", "-w",
    is_flag=True,
    help="Repeat STAT until interrupted",
)
@click.option(
    "--interval",
    type=click.IntRange(min=MIN_STAT_INTERVAL_MS),
    default=None,
    help=f"Poll interval in ms with --watch (minimum {MIN_STAT_INTERVAL_MS})",
)
@pass_context
def stat(
    ctx: Context,
    drive: Optional[int],
    head_loaded: tuple[int, ...],
    watch: bool,
    interval: Optional[int],
) -> None:
    """
    Request drive status from the server.

    Sends the selected drive and head-load flags and prints which
    drives have an image mounted.

    Example:
        fdclink stat
        fdclink stat --drive 1 --head-loaded 1
        fdclink stat --watch --interval 250
    """
    state = DriveState()
    state.select_drive(drive)
    for head in head_loaded:
        state.set_head_loaded(head, True)

    interval_ms = interval or ctx.config.stat_interval_ms

    try:
        with ctx.protocol(state) as protocol:
            if not watch:
                result = protocol.stat()
                click.echo(str(result))
                click.echo(format_mount_status(result.mount_bitmap))
                return

            last_bitmap: Optional[int] = None
            click.echo(f"Polling every {interval_ms} ms (Ctrl+C to stop)")
            try:
                while True:
                    # Transport failures end the loop via the handler below
                    try:
                        result = protocol.stat()
                    except (TimeoutError, ProtocolError, ChecksumError) as e:
                        click.echo(f"STAT error: {e}")
                        last_bitmap = None
                    else:
                        if result.mount_bitmap != last_bitmap:
                            click.echo(str(result))
                            click.echo(format_mount_status(result.mount_bitmap))
                            last_bitmap = result.mount_bitmap
                    time.sleep(interval_ms / 1000)
            except KeyboardInterrupt:
                click.echo("\nStopped")

    except FDCError as e:
        handle_cli_exception(e, ctx.verbose, "STAT")


# =============================================================================
# READ Command
# =============================================================================

@main.command()
@click.argument("drive", type=int)
@click.argument("track", type=int)
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Save the raw track data to this file",
)
@pass_context
def read(ctx: Context, drive: int, track: int, output: Optional[str]) -> None:
    """
    Read one track from the server.

    DRIVE is the drive number (0-3), TRACK the track number.

    Example:
        fdclink read 0 2
        fdclink --disk minidisk read 1 34 -o track34.bin
    """
    try:
        with ctx.protocol() as protocol:
            result = protocol.read_track(drive=drive, track=track)
    except FDCError as e:
        handle_cli_exception(e, ctx.verbose, "READ")

    click.echo(str(result))

    if output:
        Path(output).write_bytes(result.data)
        click.echo(f"Saved to: {output}")

    if not result.checksum_valid:
        raise SystemExit(ExitCode.COMMS_ERROR)


# =============================================================================
# WRIT Command
# =============================================================================

@main.command()
@click.argument("drive", type=int)
@click.argument("track", type=int)
@click.argument("file", type=click.Path(exists=True, dir_okay=False), required=False)
@click.option(
    "--fill",
    type=str,
    default="0xE5",
    help="Fill byte when no FILE is given (default: 0xE5)",
)
@pass_context
def write(
    ctx: Context,
    drive: int,
    track: int,
    file: Optional[str],
    fill: str,
) -> None:
    """
    Write one track to the server.

    DRIVE is the drive number (0-3), TRACK the track number. FILE must
    hold exactly one track of data; without FILE the track is filled
    with the --fill byte.

    Example:
        fdclink write 1 2 track02.bin
        fdclink write 1 2 --fill 0x00
    """
    track_len = ctx.config.geometry.track_len

    if file:
        data = Path(file).read_bytes()
        if len(data) != track_len:
            handle_cli_exception(
                click.BadParameter(
                    f"{file} is {len(data)} bytes, a {ctx.config.disk} track is {track_len}"
                ),
                ctx.verbose,
            )
    else:
        try:
            data = bytes([parse_byte(fill)]) * track_len
        except click.BadParameter as e:
            handle_cli_exception(e, ctx.verbose)

    try:
        with ctx.protocol() as protocol:
            result = protocol.write_track(data, drive=drive, track=track)
    except FDCError as e:
        handle_cli_exception(e, ctx.verbose, "WRIT")

    click.echo(str(result))
    if not result.ok:
        raise SystemExit(ExitCode.COMMS_ERROR)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
