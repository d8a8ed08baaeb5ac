"""USB CDC serial connection to the fdcanusb.

The adapter enumerates as a virtual COM port (STM32 CDC, 0x0483:0x5740).
The baud rate is meaningless for CDC but pyserial requires one. The read
timeout is kept short so the framer in :mod:`.bus` can re-check its own
deadlines between partial reads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial
from serial.tools import list_ports

logger = logging.getLogger(__name__)

VENDOR_ID = 0x0483
PRODUCT_ID = 0x5740
DEFAULT_PORT = "/dev/fdcanusb"
BAUDRATE = 115200
READ_TIMEOUT_S = 0.01


@dataclass
class DeviceInfo:
    """Basic port identification from the USB descriptors."""

    port: str = ""
    description: str = ""
    serial_number: str = ""
    manufacturer: str = ""
    vendor_id: int | None = None
    product_id: int | None = None


def find_ports(
    vendor_id: int = VENDOR_ID,
    product_id: int = PRODUCT_ID,
) -> list[DeviceInfo]:
    """List serial ports whose USB ids match the adapter."""
    found = []
    for port in list_ports.comports():
        if port.vid != vendor_id or port.pid != product_id:
            continue
        found.append(
            DeviceInfo(
                port=port.device,
                description=port.description or "",
                serial_number=port.serial_number or "",
                manufacturer=port.manufacturer or "",
                vendor_id=port.vid,
                product_id=port.pid,
            )
        )
    return found


class SerialConnection:
    """Manages the serial port the fdcanusb is attached to.

    Implements the ``write`` / ``readinto`` transport interface expected by
    :class:`~fdcanusb_mcp.transport.bus.FdCanUSB`.

    Usage::

        conn = SerialConnection()
        conn.open()
        bus = FdCanUSB(conn)
        ...
        conn.close()
    """

    def __init__(
        self,
        port: str | None = None,
        read_timeout: float = READ_TIMEOUT_S,
        baudrate: int = BAUDRATE,
    ) -> None:
        self._port = port
        self._read_timeout = read_timeout
        self._baudrate = baudrate
        self._serial: serial.Serial | None = None
        self._device_info = DeviceInfo(port=port or "")

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    def _resolve_port(self) -> DeviceInfo:
        if self._port:
            for info in find_ports():
                if info.port == self._port:
                    return info
            return DeviceInfo(port=self._port)
        matches = find_ports()
        if matches:
            return matches[0]
        logger.debug("No port matched %04x:%04x, trying %s", VENDOR_ID, PRODUCT_ID, DEFAULT_PORT)
        return DeviceInfo(port=DEFAULT_PORT)

    def open(self) -> DeviceInfo:
        """Open the port and discard anything left in its buffers.

        Returns:
            DeviceInfo for the opened port.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        self.close()
        info = self._resolve_port()
        try:
            self._serial = serial.Serial(
                port=info.port,
                baudrate=self._baudrate,
                timeout=self._read_timeout,
            )
            self.flush()
        except (serial.SerialException, OSError) as e:
            self.close()
            raise ConnectionError(
                f"Could not open fdcanusb on {info.port}. "
                f"Ensure the device is connected and you have permissions. "
                f"Last error: {e}"
            ) from e

        self._device_info = info
        logger.info("Connected to fdcanusb on %s", info.port)
        return info

    def close(self) -> None:
        """Close the serial port."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing port: %s", e)
        finally:
            self._serial = None
            logger.info("Disconnected")

    def _require_open(self) -> serial.Serial:
        if self._serial is None:
            raise ConnectionError("Not connected to device")
        return self._serial

    def write(self, data: bytes) -> int:
        return self._require_open().write(data)

    def readinto(self, buffer: memoryview) -> int:
        return self._require_open().readinto(buffer)

    def flush(self) -> None:
        """Drain pending output and drop any unread input.

        Stale bytes in the input buffer would otherwise be taken for the
        next acknowledgment.
        """
        port = self._require_open()
        port.flush()
        port.reset_input_buffer()
        port.reset_output_buffer()
