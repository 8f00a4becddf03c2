"""
Shared fixtures for the SID protocol engine tests.

Provides an in-memory serial port that mimics the parts of pyserial the
engine uses, and a manual clock so acknowledgment timeouts can be tested
without real waiting.
"""

from collections import deque
from typing import Optional

import pytest

from saab_hpd.config import EngineConfig
from saab_hpd.protocol.session import SIDSession


SYNC = bytes([0x02, 0x81, 0x00, 0x83])
ACK = bytes([0x02, 0xFF, 0x00, 0x01])


def error_reply(code: int) -> bytes:
    """Wire bytes of an ERROR frame carrying ``code`` at payload[0]."""
    body = bytes([0x03, 0xFE, 0x00, code])
    return body + bytes([sum(body) & 0xFF])


class FakePort:
    """
    In-memory stand-in for serial.Serial.

    Bytes queued with ``inject()`` are available immediately. Replies
    queued with ``queue_reply()`` become readable when the next write
    happens, one reply per write, like a display answering a command.
    """

    def __init__(self) -> None:
        self.rx = bytearray()
        self.writes: list[bytes] = []
        self.replies: deque = deque()
        self.is_open = True
        self.timeout = 0.01
        self.flushes = 0

    @property
    def in_waiting(self) -> int:
        return len(self.rx)

    def inject(self, data: bytes) -> None:
        self.rx.extend(data)

    def queue_reply(self, data: Optional[bytes]) -> None:
        """Queue the bytes sent back after the next write (None = silence)."""
        self.replies.append(data)

    def read(self, size: int = 1) -> bytes:
        chunk = bytes(self.rx[:size])
        del self.rx[:size]
        return chunk

    def write(self, data: bytes) -> int:
        self.writes.append(bytes(data))
        if self.replies:
            reply = self.replies.popleft()
            if reply:
                self.rx.extend(reply)
        return len(data)

    def flush(self) -> None:
        self.flushes += 1

    def reset_input_buffer(self) -> None:
        self.rx.clear()

    def reset_output_buffer(self) -> None:
        pass

    def close(self) -> None:
        self.is_open = False


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def port() -> FakePort:
    return FakePort()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def session(port: FakePort, clock: FakeClock, config: EngineConfig) -> SIDSession:
    """Session over a FakePort, with the stream already synchronized."""
    sid = SIDSession(port, config=config, clock=clock, sleep=clock.sleep)
    port.inject(SYNC)
    sid.poll()
    return sid
