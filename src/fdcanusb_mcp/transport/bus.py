"""Request/acknowledge/response framing over a byte-stream transport.

Every command sent to the fdcanusb is answered with an ``OK`` line once the
adapter has parsed it. If the command provokes a reply on the CAN bus, the
adapter then forwards it as a ``rcv`` line::

    host                      fdcanusb
      |-- can send ... ------->|
      |<-- OK -----------------|  within ACK_TIMEOUT_S
      |<-- rcv ... ------------|  within RESPONSE_TIMEOUT_S (optional)

Packets are delimited by ``\\n`` only. Once the stream is out of step there
is no way to find the next packet boundary other than reading to the next
newline, so bytes already pulled off the transport before an error are
lost. Call :meth:`FdCanUSB.flush` before retrying after a
:class:`~fdcanusb_mcp.errors.LostSyncError`.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from ..errors import (
    BufferOverflowError,
    LostSyncError,
    ParseError,
    ReadError,
    ReadTimeoutError,
    ResponseEncodingError,
    ResponseParseError,
    WriteError,
)
from ..models.frame import CanFdFrame
from ..protocol.framing import ACK, RESPONSE_PREFIX, decode_frame, encode_frame
from .serial_connection import SerialConnection

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 256
ACK_TIMEOUT_S = 0.05
RESPONSE_TIMEOUT_S = 0.5


class Transport(Protocol):
    """Minimal byte-stream capability the framer needs.

    ``write`` returns the number of bytes accepted; 0 or ``None`` means
    nothing was written and is reported as a :class:`WriteError`.
    ``readinto`` must block for at most a short, transport-level timeout
    and return the number of bytes read (0 or ``None`` when nothing
    arrived). ``serial.Serial`` satisfies this directly.
    """

    def write(self, data: bytes) -> int | None:
        ...

    def readinto(self, buffer: memoryview) -> int | None:
        ...


class FdCanUSB:
    """Drives single-frame transfers against an fdcanusb adapter.

    Usage::

        with FdCanUSB.open("/dev/fdcanusb") as bus:
            reply = bus.transfer(CanFdFrame(0x8001, b"\\x01\\x00"), want_response=True)

    Not thread safe: one transfer owns the transport and buffer for its
    whole duration.
    """

    def __init__(
        self,
        transport: Transport,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        ack_timeout: float = ACK_TIMEOUT_S,
        response_timeout: float = RESPONSE_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if buffer_size < 1:
            raise ValueError(f"Buffer size must be positive, got {buffer_size}")
        self._transport = transport
        self._buffer = bytearray(buffer_size)
        # Total valid bytes in the buffer
        self._read_len = 0
        # Leading bytes already handed out as packets
        self._used_bytes = 0
        self._ack_timeout = ack_timeout
        self._response_timeout = response_timeout
        self._clock = clock

    @classmethod
    def open(cls, port: str | None = None, **kwargs) -> FdCanUSB:
        """Open the adapter's serial port and wrap it in a framer.

        Keyword arguments are split between :class:`SerialConnection`
        (``read_timeout``, ``baudrate``) and the framer itself.
        """
        conn_kwargs = {
            key: kwargs.pop(key) for key in ("read_timeout", "baudrate") if key in kwargs
        }
        connection = SerialConnection(port, **conn_kwargs)
        connection.open()
        try:
            return cls(connection, **kwargs)
        except Exception:
            connection.close()
            raise

    @property
    def transport(self) -> Transport:
        return self._transport

    def transfer(
        self, frame: CanFdFrame, want_response: bool = False
    ) -> CanFdFrame | None:
        """Send one frame and wait for the adapter's acknowledgment.

        Args:
            frame: Frame to send.
            want_response: Also wait for, decode, and return the next
                ``rcv`` line.

        Returns:
            The response frame, or ``None`` if no response was requested.

        Raises:
            WriteError: The command could not be written.
            ReadError: The acknowledgment or response was missing or bad.
        """
        self._write_line(encode_frame(frame).as_bytes())
        self._read_len = 0
        self._used_bytes = 0
        self._read_ok()
        if not want_response:
            return None
        return self._read_response()

    def flush(self) -> None:
        """Discard everything pending on the transport and in the buffer."""
        for name in ("flush", "reset_input_buffer", "reset_output_buffer"):
            method = getattr(self._transport, name, None)
            if method is not None:
                method()
        self._read_len = 0
        self._used_bytes = 0

    def close(self) -> None:
        """Close the transport if it supports closing."""
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> FdCanUSB:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _write_line(self, line: bytes) -> None:
        logger.debug("> %r", line)
        view = memoryview(line)
        try:
            while view:
                written = self._transport.write(view)
                if not written:
                    raise WriteError("Transport accepted no bytes")
                view = view[written:]
        except OSError as e:
            raise WriteError(f"Failed to write to port: {e}") from e

    def _read_packet(self, timeout: float, expected: str) -> bytes:
        """Return the next ``\\n``-terminated packet, reading as needed."""
        deadline = self._clock() + timeout
        while True:
            end = self._buffer.find(b"\n", self._used_bytes, self._read_len)
            if end != -1:
                packet = bytes(self._buffer[self._used_bytes : end + 1])
                self._used_bytes = end + 1
                logger.debug("raw packet %r", packet)
                return packet

            if self._clock() > deadline:
                raise ReadTimeoutError(expected)
            if self._read_len == len(self._buffer):
                raise BufferOverflowError(
                    f"No newline in {self._read_len} buffered bytes"
                )

            try:
                with memoryview(self._buffer) as view, view[self._read_len :] as tail:
                    count = self._transport.readinto(tail) or 0
            except OSError as e:
                raise ReadError(f"Failed to read from port: {e}") from e
            if count:
                logger.debug(
                    "read %d %r",
                    count,
                    bytes(self._buffer[self._read_len : self._read_len + count]),
                )
            self._read_len += count

    def _read_ok(self) -> None:
        packet = self._read_packet(self._ack_timeout, ACK)
        if not packet.startswith(ACK.encode()):
            raise LostSyncError(ACK, packet.decode("utf-8", errors="replace"))

    def _read_response(self) -> CanFdFrame:
        packet = self._read_packet(self._response_timeout, RESPONSE_PREFIX)
        if not packet.startswith(RESPONSE_PREFIX.encode()):
            raise LostSyncError(
                RESPONSE_PREFIX, packet.decode("utf-8", errors="replace")
            )
        try:
            text = packet.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ResponseEncodingError(
                f"Failed to decode packet as UTF-8: {e}"
            ) from e
        logger.debug("< %r", text)
        try:
            return decode_frame(text)
        except ParseError as e:
            raise ResponseParseError(e) from e
