"""Tests for the pyserial-backed connection."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import serial

from fdcanusb_mcp.transport.serial_connection import (
    DEFAULT_PORT,
    PRODUCT_ID,
    READ_TIMEOUT_S,
    VENDOR_ID,
    SerialConnection,
    find_ports,
)

MODULE = "fdcanusb_mcp.transport.serial_connection"


def _port(device, vid=VENDOR_ID, pid=PRODUCT_ID):
    return SimpleNamespace(
        device=device,
        vid=vid,
        pid=pid,
        description="fdcanusb",
        serial_number="ABC123",
        manufacturer="mjbots",
    )


def test_find_ports_filters_by_usb_id():
    """Only ports matching the adapter's VID/PID are returned."""
    ports = [_port("/dev/ttyACM0"), _port("/dev/ttyUSB0", vid=0x1234), _port("/dev/ttyACM1")]
    with patch(f"{MODULE}.list_ports.comports", return_value=ports):
        found = find_ports()
    assert [info.port for info in found] == ["/dev/ttyACM0", "/dev/ttyACM1"]
    assert found[0].serial_number == "ABC123"
    assert found[0].vendor_id == VENDOR_ID


def test_open_autodiscovers_port():
    """Without a port the first matching device is opened."""
    with patch(f"{MODULE}.list_ports.comports", return_value=[_port("/dev/ttyACM3")]), \
            patch(f"{MODULE}.serial.Serial") as serial_cls:
        conn = SerialConnection()
        info = conn.open()

    assert info.port == "/dev/ttyACM3"
    assert serial_cls.call_args.kwargs["port"] == "/dev/ttyACM3"
    assert serial_cls.call_args.kwargs["timeout"] == READ_TIMEOUT_S
    assert conn.device_info.description == "fdcanusb"


def test_open_falls_back_to_default_path():
    """With no matching device the udev path is tried."""
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial") as serial_cls:
        info = SerialConnection().open()
    assert info.port == DEFAULT_PORT
    assert serial_cls.call_args.kwargs["port"] == DEFAULT_PORT


def test_open_explicit_port():
    """An explicit port is used even if it does not match the USB ids."""
    with patch(f"{MODULE}.list_ports.comports", return_value=[_port("/dev/ttyACM0")]), \
            patch(f"{MODULE}.serial.Serial") as serial_cls:
        info = SerialConnection("/dev/ttyS5", read_timeout=0.05).open()
    assert info.port == "/dev/ttyS5"
    assert serial_cls.call_args.kwargs["timeout"] == 0.05


def test_open_discards_stale_data():
    """Opening flushes and resets both serial buffers."""
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial") as serial_cls:
        SerialConnection().open()
    port = serial_cls.return_value
    port.flush.assert_called_once_with()
    port.reset_input_buffer.assert_called_once_with()
    port.reset_output_buffer.assert_called_once_with()


def test_open_failure_raises_connection_error():
    """pyserial errors are reported as ConnectionError."""
    error = serial.SerialException("no such device")
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial", side_effect=error):
        conn = SerialConnection()
        with pytest.raises(ConnectionError) as exc:
            conn.open()
    assert exc.value.__cause__ is error
    assert not conn.connected


def test_io_requires_open():
    """Reading or writing a closed connection raises."""
    conn = SerialConnection()
    with pytest.raises(ConnectionError):
        conn.write(b"x")
    with pytest.raises(ConnectionError):
        conn.readinto(bytearray(4))
    with pytest.raises(ConnectionError):
        conn.flush()


def test_write_and_readinto_delegate():
    """I/O is passed straight through to the serial port."""
    port = MagicMock()
    port.write.return_value = 3
    port.readinto.return_value = 2
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial", return_value=port):
        conn = SerialConnection()
        conn.open()

    assert conn.connected
    assert conn.write(b"abc") == 3
    buffer = bytearray(8)
    assert conn.readinto(buffer) == 2
    port.readinto.assert_called_once_with(buffer)


def test_close():
    """close() releases the port and is idempotent."""
    port = MagicMock()
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial", return_value=port):
        conn = SerialConnection()
        conn.open()
    conn.close()
    port.close.assert_called_once_with()
    assert not conn.connected
    conn.close()


def test_close_error_is_logged(caplog):
    """Errors while closing are logged, and the connection still resets."""
    port = MagicMock()
    port.close.side_effect = serial.SerialException("already gone")
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial", return_value=port):
        conn = SerialConnection()
        conn.open()
    conn.close()
    assert not conn.connected
    assert "already gone" in caplog.text


def test_reopen_closes_previous_port():
    """Opening twice releases the first handle before the second."""
    first, second = MagicMock(), MagicMock()
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial", side_effect=[first, second]):
        conn = SerialConnection()
        conn.open()
        conn.open()
    first.close.assert_called_once_with()
    second.close.assert_not_called()
    assert conn.connected


def test_flush_failure_on_open_closes_port():
    """A failing buffer reset during open closes the port and raises ConnectionError."""
    port = MagicMock()
    error = serial.SerialException("reset failed")
    port.reset_input_buffer.side_effect = error
    with patch(f"{MODULE}.list_ports.comports", return_value=[]), \
            patch(f"{MODULE}.serial.Serial", return_value=port):
        conn = SerialConnection()
        with pytest.raises(ConnectionError) as exc:
            conn.open()
    assert exc.value.__cause__ is error
    port.close.assert_called_once_with()
    assert not conn.connected
