"""Data models for CAN-FD frames."""

from .frame import CanFdFrame, MAX_DATA_LENGTH
