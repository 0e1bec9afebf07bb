"""
Tests for the fdclink Command-Line Interface
============================================

Drives the Click commands with CliRunner. The serial port is replaced by
the FakeSerialPort/DriveServer pair from conftest.py, so every command
runs a real transaction end to end.
"""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from fdclink.cli.errors import ExitCode
from fdclink.cli.fdclink import format_mount_status, main, parse_byte
from fdclink.comms.frame import ResponseCode


@pytest.fixture
def opener(monkeypatch, fake_port):
    """Fixture: open_serial_port replaced by one returning the fake port."""
    for name in ("FDCLINK_PORT", "FDCLINK_BAUD", "FDCLINK_DISK", "FDCLINK_STAT_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    mock_open = MagicMock(return_value=fake_port)
    monkeypatch.setattr("fdclink.cli.fdclink.open_serial_port", mock_open)
    return mock_open


@pytest.fixture
def runner():
    return CliRunner()


# =============================================================================
# Helper Tests
# =============================================================================

class TestHelpers:
    """Tests for CLI helper functions."""

    def test_parse_byte(self):
        assert parse_byte("0xE5") == 0xE5
        assert parse_byte("0") == 0
        assert parse_byte("255") == 255

    @pytest.mark.parametrize("value", ["256", "-1", "zz", ""])
    def test_parse_byte_invalid(self, value):
        import click
        with pytest.raises(click.BadParameter):
            parse_byte(value)

    def test_format_mount_status(self):
        lines = format_mount_status(0b0101).splitlines()
        assert lines == [
            "  Drive 0: mounted",
            "  Drive 1: -",
            "  Drive 2: mounted",
            "  Drive 3: -",
        ]


# =============================================================================
# Main Group Tests
# =============================================================================

class TestMain:
    """Tests for the top-level command group."""

    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("ports", "stat", "read", "write"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "fdclink" in result.output

    def test_no_port(self, runner, opener):
        result = runner.invoke(main, ["stat"])
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "No serial port specified" in result.output
        opener.assert_not_called()

    def test_invalid_baud(self, runner, opener):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "-b", "9600", "stat"])
        assert result.exit_code == 2
        opener.assert_not_called()

    def test_port_and_baud_options(self, runner, opener):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "-b", "230400", "stat"])
        assert result.exit_code == 0
        opener.assert_called_once_with("/dev/ttyUSB0", baud_rate=230400)

    def test_port_from_environment(self, runner, opener, monkeypatch):
        monkeypatch.setenv("FDCLINK_PORT", "/dev/ttyACM0")
        result = runner.invoke(main, ["stat"])
        assert result.exit_code == 0
        opener.assert_called_once_with("/dev/ttyACM0", baud_rate=403200)

    def test_port_closed_after_command(self, runner, opener, fake_port):
        runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat"])
        assert not fake_port.is_open

    def test_connection_error(self, runner, opener):
        from fdclink.errors import ConnectionError
        opener.side_effect = ConnectionError("Serial port not found: /dev/ttyUSB9")
        result = runner.invoke(main, ["-p", "/dev/ttyUSB9", "stat"])
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "STAT error: Serial port not found" in result.output


# =============================================================================
# Ports Command Tests
# =============================================================================

class TestPortsCommand:
    """Tests for 'fdclink ports'."""

    def test_no_ports(self, runner):
        with patch("fdclink.cli.fdclink.list_serial_ports", return_value=[]):
            result = runner.invoke(main, ["ports"])
        assert result.exit_code == 0
        assert "No serial ports found" in result.output

    def test_lists_ports(self, runner):
        from fdclink.comms.serial import PortInfo
        ports = [PortInfo("/dev/ttyUSB0", "USB Serial", "FTDI", "A1", 0x0403, 0x6001)]
        with patch("fdclink.cli.fdclink.list_serial_ports", return_value=ports):
            result = runner.invoke(main, ["ports", "--detailed"])
        assert result.exit_code == 0
        assert "/dev/ttyUSB0" in result.output
        assert "0403:6001" in result.output


# =============================================================================
# STAT Command Tests
# =============================================================================

class TestStatCommand:
    """Tests for 'fdclink stat'."""

    def test_stat(self, runner, opener, server):
        server.mount_bitmap = 0b0011
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat"])
        assert result.exit_code == 0
        assert "Received 'STAT' response 0x0003" in result.output
        assert "Drive 1: mounted" in result.output
        assert "Drive 2: -" in result.output

    def test_drive_and_heads(self, runner, opener, server):
        result = runner.invoke(
            main,
            ["-p", "/dev/ttyUSB0", "stat", "--drive", "1",
             "--head-loaded", "1", "--head-loaded", "3"],
        )
        assert result.exit_code == 0
        assert server.commands[0].param1 == 0x0A01

    def test_head_loaded_out_of_range(self, runner, opener):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat", "--head-loaded", "4"])
        assert result.exit_code == 2

    def test_interval_minimum(self, runner, opener):
        result = runner.invoke(
            main, ["-p", "/dev/ttyUSB0", "stat", "--watch", "--interval", "50"]
        )
        assert result.exit_code == 2

    def test_no_response(self, runner, opener, server):
        server.silent = True
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat"])
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "STAT error: No 'STAT' response received" in result.output

    def test_watch(self, runner, opener, server):
        server.mount_bitmap = 0b0001
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 3:
                raise KeyboardInterrupt

        with patch("fdclink.cli.fdclink.time.sleep", side_effect=fake_sleep):
            result = runner.invoke(
                main, ["-p", "/dev/ttyUSB0", "stat", "--watch", "--interval", "250"]
            )

        assert result.exit_code == 0
        assert "Polling every 250 ms" in result.output
        # Unchanged status is printed once
        assert result.output.count("Received 'STAT' response 0x0001") == 1
        assert "Stopped" in result.output
        assert sleeps == [0.25, 0.25, 0.25]
        assert len(server.commands) == 3

    def test_watch_keeps_polling_after_error(self, runner, opener, server):
        server.silent = True
        calls = []

        def fake_sleep(seconds):
            calls.append(seconds)
            if len(calls) == 1:
                server.silent = False
            else:
                raise KeyboardInterrupt

        with patch("fdclink.cli.fdclink.time.sleep", side_effect=fake_sleep):
            result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat", "-w"])

        assert result.exit_code == 0
        assert "STAT error: No 'STAT' response received" in result.output
        assert "Received 'STAT' response 0x0000" in result.output
        assert calls == [0.1, 0.1]

    def test_watch_keeps_polling_after_bad_response(self, runner, opener, server):
        server.corrupt_responses = True
        calls = []

        def fake_sleep(seconds):
            calls.append(seconds)
            if len(calls) == 2:
                raise KeyboardInterrupt

        with patch("fdclink.cli.fdclink.time.sleep", side_effect=fake_sleep):
            result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat", "-w"])

        assert result.exit_code == 0
        assert result.output.count("STAT error: Checksum error") == 2
        assert len(server.commands) == 2

    def test_watch_stops_on_transport_failure(self, runner, opener, fake_port):
        fake_port.fail_reads = True
        sleep = MagicMock()

        with patch("fdclink.cli.fdclink.time.sleep", sleep):
            result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat", "--watch"])

        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "STAT error: read() error" in result.output
        assert "Stopped" not in result.output
        sleep.assert_not_called()

    def test_watch_stops_when_port_closes(self, runner, opener, fake_port, server):
        def unplug(seconds):
            fake_port.close()

        with patch("fdclink.cli.fdclink.time.sleep", side_effect=unplug):
            result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "stat", "--watch"])

        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "STAT error: Serial port not open" in result.output
        assert len(server.commands) == 1


# =============================================================================
# READ Command Tests
# =============================================================================

class TestReadCommand:
    """Tests for 'fdclink read'."""

    def test_read(self, runner, opener, server):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "read", "0", "2"])
        assert result.exit_code == 0
        assert "Received 4384 byte track" in result.output
        assert server.commands[0].param1 == 0x0002

    def test_read_minidisk(self, runner, opener, server):
        result = runner.invoke(
            main, ["-p", "/dev/ttyUSB0", "--disk", "minidisk", "read", "1", "34"]
        )
        assert result.exit_code == 0
        assert "Received 2192 byte track" in result.output
        assert server.commands[0].param2 == 2192

    def test_read_to_file(self, runner, opener, server, tmp_path):
        data = bytes(range(256)) * 17 + bytes(32)
        server.tracks[(0, 5)] = data
        output = tmp_path / "track05.bin"
        result = runner.invoke(
            main, ["-p", "/dev/ttyUSB0", "read", "0", "5", "-o", str(output)]
        )
        assert result.exit_code == 0
        assert output.read_bytes() == data

    def test_checksum_error(self, runner, opener, server):
        server.corrupt_track_checksum = True
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "read", "0", "0"])
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "checksum error" in result.output

    def test_partial_track(self, runner, opener, server):
        server.read_truncate = 4000
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "read", "0", "0"])
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "READ error: Received 4000 of 4386 bytes" in result.output

    def test_invalid_drive(self, runner, opener, fake_port):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "read", "4", "0"])
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "Invalid drive number: 4" in result.output
        assert fake_port.writes == []

    def test_invalid_track(self, runner, opener):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "read", "0", "77"])
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "Invalid track number: 77" in result.output


# =============================================================================
# WRIT Command Tests
# =============================================================================

class TestWriteCommand:
    """Tests for 'fdclink write'."""

    def test_write_fill(self, runner, opener, server):
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "write", "1", "2"])
        assert result.exit_code == 0
        assert "Received WSTA OK response" in result.output
        assert server.written[(1, 2)] == b"\xE5" * 4384

    def test_write_fill_value(self, runner, opener, server):
        result = runner.invoke(
            main, ["-p", "/dev/ttyUSB0", "write", "0", "0", "--fill", "0x00"]
        )
        assert result.exit_code == 0
        assert server.written[(0, 0)] == bytes(4384)

    def test_write_invalid_fill(self, runner, opener, fake_port):
        result = runner.invoke(
            main, ["-p", "/dev/ttyUSB0", "write", "0", "0", "--fill", "0x100"]
        )
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert fake_port.writes == []

    def test_write_file(self, runner, opener, server, tmp_path):
        data = bytes(range(256)) * 8 + bytes(144)
        source = tmp_path / "track.bin"
        source.write_bytes(data)
        result = runner.invoke(
            main,
            ["-p", "/dev/ttyUSB0", "--disk", "minidisk", "write", "3", "10", str(source)],
        )
        assert result.exit_code == 0
        assert server.written[(3, 10)] == data

    def test_write_file_wrong_size(self, runner, opener, fake_port, tmp_path):
        source = tmp_path / "short.bin"
        source.write_bytes(bytes(100))
        result = runner.invoke(
            main, ["-p", "/dev/ttyUSB0", "write", "0", "0", str(source)]
        )
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "is 100 bytes" in result.output
        assert fake_port.writes == []

    def test_not_ready(self, runner, opener, server):
        server.writ_code = ResponseCode.NOT_READY
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "write", "1", "2"])
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "WRIT error: Received NOT READY WRIT response" in result.output
        assert server.written == {}

    def test_wsta_error(self, runner, opener, server):
        server.wsta_code = ResponseCode.WRITE_ERROR
        result = runner.invoke(main, ["-p", "/dev/ttyUSB0", "write", "1", "2"])
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert "Received WSTA WRITE ERROR response" in result.output
