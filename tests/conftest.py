from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Optional

import pytest

from bbtk.config import BbtkConfig, CaptureConfig, TimingConfig
from bbtk.errors import DeviceIOError


class FakeTransport:
    """
    Scripted stand-in for SerialTransport.

    `replies` maps a command line to the byte chunks the device answers with;
    they are queued when that command is written. An empty chunk simulates a
    read that timed out.
    """

    def __init__(self, replies: Optional[Dict[str, Iterable[bytes]]] = None) -> None:
        self.replies: Dict[str, List[List[bytes]]] = {}
        for command, chunks in (replies or {}).items():
            self.add_reply(command, chunks)
        self.pending: "deque[bytes]" = deque()
        self.written: List[str] = []
        self.raw_writes: List[bytes] = []
        self.breaks = 0
        self.resets = 0
        self.is_open = True
        self.fail_write_on: Optional[str] = None
        self.fail_read = False
        self.fail_break = False

    def add_reply(self, command: str, chunks: Iterable[bytes]) -> None:
        self.replies.setdefault(command, []).append(list(chunks))

    def feed(self, *chunks: bytes) -> None:
        self.pending.extend(chunks)

    @property
    def in_waiting(self) -> int:
        return len(self.pending[0]) if self.pending else 0

    def write(self, data: bytes) -> None:
        if not self.is_open:
            raise DeviceIOError("port closed")
        assert data.endswith(b"\r\n")
        command = data[:-2].decode("ascii")
        if self.fail_write_on is not None and command == self.fail_write_on:
            raise DeviceIOError(f"write of {command} failed")
        self.raw_writes.append(data)
        self.written.append(command)
        queued = self.replies.get(command)
        if queued:
            self.pending.extend(queued.pop(0))

    def read(self, size: int) -> bytes:
        if self.fail_read:
            raise DeviceIOError("device unplugged")
        if not self.pending:
            return b""
        chunk = self.pending.popleft()
        if len(chunk) > size:
            self.pending.appendleft(chunk[size:])
            chunk = chunk[:size]
        return chunk

    def reset_buffers(self) -> None:
        self.resets += 1
        self.pending.clear()

    def send_break(self, duration: float = 0.01, settle: float = 1.0) -> None:
        if self.fail_break:
            raise DeviceIOError("Cannot send break on /dev/ttyFAKE")
        self.breaks += 1

    def close(self) -> None:
        self.is_open = False


def fast_config(**capture_overrides) -> BbtkConfig:
    return BbtkConfig(
        port="/dev/ttyFAKE",
        duration_sec=1.0,
        timing=TimingConfig(
            command_settle_sec=0.0,
            break_duration_sec=0.0,
            break_settle_sec=0.0,
            commit_wait_sec=0.0,
            poll_interval_sec=0.0,
        ),
        capture=CaptureConfig(lead_time_sec=1.0, **capture_overrides),
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> BbtkConfig:
    return fast_config()
