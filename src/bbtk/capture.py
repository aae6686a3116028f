from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from .commands import DIGITAL_CAPTURE_MODE, END_OF_DATA, RUN_DIGITAL_SAMPLE, TIMED_LIMIT_MODE
from .config import BbtkConfig
from .errors import CaptureTimeout
from .protocol import LineProtocol

logger = logging.getLogger(__name__)

MICROSECONDS_PER_SECOND = 1_000_000


class CaptureState(str, enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    WAITING = "waiting"
    DRAINING = "draining"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureResult:
    """Raw bytes streamed back by the device, `EDAT` included, unparsed."""

    data: bytes
    duration_sec: float
    chunks: int

    @property
    def text(self) -> str:
        return self.data.decode("ascii", errors="replace")

    def __len__(self) -> int:
        return len(self.data)


class CaptureController:
    """
    Runs one timed digital capture: arm the device, sit out the capture
    window, then drain the port until the end-of-data marker shows up.

    The marker is searched in everything received so far, so a marker split
    over two reads still ends the drain.
    """

    def __init__(self, protocol: LineProtocol, config: Optional[BbtkConfig] = None) -> None:
        self.protocol = protocol
        self.config = config or BbtkConfig()
        self.state = CaptureState.IDLE
        self._marker = END_OF_DATA.encode("ascii")

    def run(self, duration_sec: float) -> CaptureResult:
        if duration_sec <= 0:
            raise ValueError(f"Capture duration must be positive, got {duration_sec}")
        self.state = CaptureState.IDLE
        try:
            self._arm(duration_sec)
            self._wait(duration_sec)
            data, chunks = self._drain()
        except Exception:
            self.state = CaptureState.FAILED
            raise
        self.state = CaptureState.COMPLETE
        logger.info("Capture complete: %d bytes in %d chunks", len(data), chunks)
        return CaptureResult(data=data, duration_sec=duration_sec, chunks=chunks)

    def _arm(self, duration_sec: float) -> None:
        micros = int(round(duration_sec * MICROSECONDS_PER_SECOND))
        for command in (
            DIGITAL_CAPTURE_MODE.mnemonic,
            TIMED_LIMIT_MODE.mnemonic,
            str(micros),
            RUN_DIGITAL_SAMPLE.mnemonic,
        ):
            self.protocol.send_command(command)
        self.state = CaptureState.ARMED
        logger.info("Capture armed for %.3f s", duration_sec)

    def _wait(self, duration_sec: float) -> None:
        self.state = CaptureState.WAITING
        # the device stays silent until the window has elapsed
        wait_sec = max(duration_sec - self.config.capture.lead_time_sec, 0.0)
        if wait_sec > 0:
            time.sleep(wait_sec)

    def _drain(self) -> Tuple[bytes, int]:
        self.state = CaptureState.DRAINING
        settings = self.config.capture
        logger.info("Waiting for data...")
        buffer = bytearray()
        chunks = 0
        idle_reads = 0
        scan_from = 0
        deadline = None
        if settings.drain_deadline_sec is not None:
            deadline = time.monotonic() + settings.drain_deadline_sec
        while True:
            chunk = self.protocol.read_chunk(settings.chunk_size)
            if chunk:
                chunks += 1
                idle_reads = 0
                buffer.extend(chunk)
                if self.config.debug:
                    logger.debug("+%d bytes (total %d)", len(chunk), len(buffer))
                if buffer.find(self._marker, scan_from) >= 0:
                    return bytes(buffer), chunks
                scan_from = max(len(buffer) - len(self._marker) + 1, 0)
            else:
                idle_reads += 1
                if settings.max_idle_reads is not None and idle_reads >= settings.max_idle_reads:
                    raise CaptureTimeout(
                        f"No {END_OF_DATA} after {idle_reads} empty reads ({len(buffer)} bytes received)",
                        partial=bytes(buffer),
                    )
            if deadline is not None and time.monotonic() >= deadline:
                raise CaptureTimeout(
                    f"No {END_OF_DATA} within {settings.drain_deadline_sec:.1f} s "
                    f"({len(buffer)} bytes received)",
                    partial=bytes(buffer),
                )
