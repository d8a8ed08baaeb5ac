"""Transport layer: serial connection and the request/response framer."""

from .bus import FdCanUSB, Transport
from .serial_connection import DeviceInfo, SerialConnection, find_ports
