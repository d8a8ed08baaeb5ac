"""Driver and MCP server for the mjbots fdcanusb CAN-FD adapter."""

from .errors import (
    FdCanUSBError,
    InvalidFrameLength,
    ParseError,
    TransferError,
    WriteError,
    ReadError,
    LostSyncError,
    ReadTimeoutError,
)
from .models.frame import CanFdFrame
from .protocol.framing import WireLine, encode_frame, decode_frame
from .transport.bus import FdCanUSB
