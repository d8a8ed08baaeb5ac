"""Exception hierarchy for frame construction, decoding, and transfers.

::

    FdCanUSBError
    ├── InvalidFrameLength
    ├── ParseError
    │   ├── UnexpectedDataError
    │   ├── UnexpectedEOLError
    │   ├── UnexpectedFlagDataError
    │   ├── IDParseError
    │   ├── DataParseError
    │   └── TimeStampParseError
    └── TransferError
        ├── WriteError
        └── ReadError
            ├── ResponseEncodingError
            ├── ResponseParseError
            ├── BufferOverflowError
            └── LostSyncError
                └── ReadTimeoutError
"""

from __future__ import annotations


class FdCanUSBError(Exception):
    """Base class for all errors raised by this package."""


class InvalidFrameLength(FdCanUSBError, ValueError):
    """A CAN-FD payload exceeded the 64-byte maximum."""

    def __init__(self, length: int) -> None:
        self.length = length
        super().__init__(f"Max frame length of 64 exceeded: {length}")


# ─── DECODE ERRORS ───────────────────────────────────────────────────

class ParseError(FdCanUSBError, ValueError):
    """A response line could not be decoded into a frame."""


class UnexpectedDataError(ParseError):
    def __init__(self, expected: str, received: str) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Unexpected data {received!r}, expected {expected!r}")


class UnexpectedEOLError(ParseError):
    def __init__(self, expected: str) -> None:
        self.expected = expected
        super().__init__(f"Unexpected EOL, expected {expected!r}")


class UnexpectedFlagDataError(ParseError):
    """A boolean flag token carried trailing characters (e.g. ``f-1``)."""

    def __init__(self, flag: str, data: str) -> None:
        self.flag = flag
        self.data = data
        super().__init__(f"Unexpected data with flag {flag!r}: {data!r}")


class IDParseError(ParseError):
    """The arbitration id token is not a 16-bit hex number."""


class DataParseError(ParseError):
    """The payload token is not valid hex, or is too long."""


class TimeStampParseError(ParseError):
    """The ``t`` flag digits are not a 32-bit decimal number."""


# ─── TRANSFER ERRORS ─────────────────────────────────────────────────

class TransferError(FdCanUSBError):
    """Base class for everything :meth:`FdCanUSB.transfer` raises."""


class WriteError(TransferError):
    """Writing the command line to the transport failed."""


class ReadError(TransferError):
    """Reading from the transport failed, or the packet read was unusable."""


class ResponseEncodingError(ReadError):
    """Response bytes were not valid UTF-8."""


class ResponseParseError(ReadError):
    """A ``rcv`` line arrived but could not be decoded."""

    def __init__(self, parse_error: ParseError) -> None:
        self.parse_error = parse_error
        super().__init__(f"Failed to parse response: {parse_error}")


class BufferOverflowError(ReadError):
    """The receive buffer filled up before a newline arrived."""


class LostSyncError(ReadError):
    """The next packet on the stream was not the one the protocol expects."""

    def __init__(self, expected: str, received: str) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Lost sync: expected {expected!r}, received {received!r}")


class ReadTimeoutError(LostSyncError):
    """No complete packet arrived before the deadline."""

    def __init__(self, expected: str) -> None:
        super().__init__(expected, "timeout")
