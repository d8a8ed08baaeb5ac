"""ASCII line codec for the fdcanusb command protocol.

Outbound command::

    can send <ID> <DATA><PADDING>[ <flag>]...\\n

- ID: 16-bit arbitration id, 4 uppercase hex characters
- DATA: payload, uppercase hex
- PADDING: ``50`` repeated until the payload reaches a valid CAN-FD size
- flags: ``b`` (bit-rate switch), ``f`` (FD frame), ``r`` (remote frame);
  uppercase sets the flag, lowercase clears it

Inbound response::

    rcv <ID> <DATA>[ <flag>]...

with flags ``e b f r`` (same case rules, ``e`` = extended id) and
``t<digits>`` (receive timestamp in microseconds).
"""

from __future__ import annotations

import binascii
import re
from dataclasses import dataclass

from ..errors import (
    DataParseError,
    IDParseError,
    InvalidFrameLength,
    TimeStampParseError,
    UnexpectedDataError,
    UnexpectedEOLError,
    UnexpectedFlagDataError,
)
from ..models.frame import (
    MAX_ARBITRATION_ID,
    MAX_DATA_LENGTH,
    MAX_TIMESTAMP,
    CanFdFrame,
)

SEND_COMMAND = "can send"
RESPONSE_PREFIX = "rcv"
ACK = "OK"
PADDING_BYTE = 0x50

# CAN-FD data length codes above 8 only allow these payload sizes
FD_FRAME_SIZES = (12, 16, 20, 24, 32, 48, 64)

_HEX_RE = re.compile(r"[0-9A-Fa-f]+")
_DIGITS_RE = re.compile(r"[0-9]+")


@dataclass
class WireLine:
    """One line of the adapter protocol, as sent or received."""

    text: str

    def as_bytes(self) -> bytes:
        return self.text.encode("ascii")

    def __str__(self) -> str:
        return self.text


def padded_length(length: int) -> int:
    """Return the CAN-FD frame size a payload of ``length`` bytes occupies.

    Raises:
        InvalidFrameLength: If ``length`` exceeds 64.
    """
    if length <= 8:
        return length
    for size in FD_FRAME_SIZES:
        if length <= size:
            return size
    raise InvalidFrameLength(length)


def encode_frame(frame: CanFdFrame) -> WireLine:
    """Build the ``can send`` command line for a frame.

    ``extended_id`` and ``timestamp`` are receive-side attributes and are
    never emitted.
    """
    data = frame.data + bytes([PADDING_BYTE]) * (
        padded_length(len(frame.data)) - len(frame.data)
    )
    flags = ""
    for char, value in (
        ("b", frame.brs),
        ("f", frame.fd_can_frame),
        ("r", frame.remote_frame),
    ):
        if value is not None:
            flags += " " + (char.upper() if value else char)

    return WireLine(
        f"{SEND_COMMAND} {frame.arbitration_id:04X} {data.hex().upper()}{flags}\n"
    )


def check_flag(flags: list[str], char: str) -> tuple[bool | None, str | None]:
    """Look up a single-letter flag in a response's flag tokens.

    The first token starting with ``char`` (either case) wins.

    Returns:
        ``(value, rest)`` where ``value`` is ``True`` for the uppercase
        form, ``False`` for lowercase, ``None`` if absent, and ``rest`` is
        any characters following the letter (``None`` if there are none).
    """
    for token in flags:
        if token.lower().startswith(char):
            return token.startswith(char.upper()), token[1:] or None
    return None, None


def _boolean_flag(flags: list[str], char: str) -> bool | None:
    value, rest = check_flag(flags, char)
    if rest is not None:
        raise UnexpectedFlagDataError(char, rest)
    return value


def decode_frame(line: WireLine | str) -> CanFdFrame:
    """Parse a ``rcv`` response line into a :class:`CanFdFrame`.

    Raises:
        ParseError: One of its subclasses, naming what was expected.
    """
    text = line.text if isinstance(line, WireLine) else line
    text = text.strip()
    if not text:
        raise UnexpectedEOLError(RESPONSE_PREFIX)

    tokens = text.split(" ")
    if tokens[0] != RESPONSE_PREFIX:
        raise UnexpectedDataError(RESPONSE_PREFIX, tokens[0])
    if len(tokens) < 2:
        raise UnexpectedEOLError("id")
    if len(tokens) < 3:
        raise UnexpectedEOLError("data")
    id_token, data_token, flags = tokens[1], tokens[2], tokens[3:]

    if not _HEX_RE.fullmatch(id_token):
        raise IDParseError(f"Failed to parse ID: {id_token!r}")
    arbitration_id = int(id_token, 16)
    if arbitration_id > MAX_ARBITRATION_ID:
        raise IDParseError(f"ID does not fit 16 bits: {id_token!r}")

    try:
        data = binascii.unhexlify(data_token)
    except (binascii.Error, ValueError) as e:
        raise DataParseError(f"Failed to parse data: {e}") from e
    if len(data) > MAX_DATA_LENGTH:
        raise DataParseError(
            f"Payload of {len(data)} bytes exceeds {MAX_DATA_LENGTH}"
        )

    extended_id = _boolean_flag(flags, "e")
    brs = _boolean_flag(flags, "b")
    fd_can_frame = _boolean_flag(flags, "f")
    remote_frame = _boolean_flag(flags, "r")

    _, stamp = check_flag(flags, "t")
    timestamp = None
    if stamp is not None:
        if not _DIGITS_RE.fullmatch(stamp) or int(stamp) > MAX_TIMESTAMP:
            raise TimeStampParseError(f"Failed to parse timestamp: {stamp!r}")
        timestamp = int(stamp)

    return CanFdFrame(
        arbitration_id=arbitration_id,
        data=data,
        extended_id=extended_id,
        brs=brs,
        fd_can_frame=fd_can_frame,
        remote_frame=remote_frame,
        timestamp=timestamp,
    )
