"""Shared fixtures: a scripted in-memory byte stream."""

from __future__ import annotations

import pytest


class FakeTransport:
    """Byte stream that replays scripted read chunks.

    Each ``readinto`` call hands out the next chunk (truncated to the
    buffer size, remainder kept for the next call). An exhausted script
    behaves like a serial read timeout and returns 0.
    """

    def __init__(self, chunks: list[bytes] | None = None) -> None:
        self.chunks = list(chunks or [])
        self.written = b""
        self.reads = 0
        self.flushed = False

    def write(self, data) -> int:
        self.written += bytes(data)
        return len(data)

    def readinto(self, buffer) -> int:
        self.reads += 1
        if not self.chunks:
            return 0
        chunk = self.chunks.pop(0)
        count = min(len(chunk), len(buffer))
        buffer[:count] = chunk[:count]
        if count < len(chunk):
            self.chunks.insert(0, chunk[count:])
        return count

    def reset_input_buffer(self) -> None:
        self.flushed = True
        self.chunks.clear()


class FakeClock:
    """Monotonic clock that advances a fixed step on every reading."""

    def __init__(self, step: float = 0.001) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
