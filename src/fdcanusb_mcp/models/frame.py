"""CAN-FD frame model, independent of the adapter's wire format."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import InvalidFrameLength

MAX_DATA_LENGTH = 64
MAX_ARBITRATION_ID = 0xFFFF
MAX_TIMESTAMP = 0xFFFFFFFF


@dataclass
class CanFdFrame:
    """A single CAN-FD frame.

    The boolean flags are tri-state: ``None`` means "not specified", in
    which case the adapter applies its own default. ``timestamp`` is only
    ever populated on frames received from the adapter (microseconds).

    Raises:
        InvalidFrameLength: If ``data`` is longer than 64 bytes.
        TypeError: If ``data`` is an int rather than a byte sequence.
        ValueError: If the id or timestamp is out of range.
    """

    arbitration_id: int
    data: bytes = b""
    extended_id: bool | None = None
    brs: bool | None = None
    fd_can_frame: bool | None = None
    remote_frame: bool | None = None
    timestamp: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.data, int):
            raise TypeError(
                f"Frame data must be bytes-like, got int {self.data}"
            )
        self.data = bytes(self.data)
        if len(self.data) > MAX_DATA_LENGTH:
            raise InvalidFrameLength(len(self.data))
        if not 0 <= self.arbitration_id <= MAX_ARBITRATION_ID:
            raise ValueError(
                f"Arbitration id must be 0-0x{MAX_ARBITRATION_ID:X}, "
                f"got 0x{self.arbitration_id:X}"
            )
        if self.timestamp is not None and not 0 <= self.timestamp <= MAX_TIMESTAMP:
            raise ValueError(f"Timestamp must fit 32 bits, got {self.timestamp}")

    def __repr__(self) -> str:
        flags = ", ".join(
            f"{name}={value}"
            for name, value in (
                ("extended_id", self.extended_id),
                ("brs", self.brs),
                ("fd_can_frame", self.fd_can_frame),
                ("remote_frame", self.remote_frame),
                ("timestamp", self.timestamp),
            )
            if value is not None
        )
        return (
            f"CanFdFrame(arbitration_id=0x{self.arbitration_id:04X}, "
            f"data={self.data.hex(' ') if self.data else '(empty)'}"
            f"{', ' + flags if flags else ''})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "arbitration_id": self.arbitration_id,
            "data": self.data.hex().upper(),
            "length": len(self.data),
            "extended_id": self.extended_id,
            "brs": self.brs,
            "fd_can_frame": self.fd_can_frame,
            "remote_frame": self.remote_frame,
            "timestamp": self.timestamp,
        }
