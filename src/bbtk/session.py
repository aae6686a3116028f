from __future__ import annotations

import logging
import time
from typing import Any, Optional, Union

from . import commands
from .capture import CaptureController, CaptureResult
from .commands import CATALOGUE, CommandSpec, ReplyPolicy
from .config import BbtkConfig
from .errors import DeviceIOError, ProtocolMismatch, ProtocolTimeout
from .models import DEFAULT_SMOOTHING, DEFAULT_THRESHOLDS, SmoothingMask, ThresholdSet
from .protocol import LineProtocol
from .transport import SerialTransport

logger = logging.getLogger(__name__)


class BbtkSession:
    """Exclusive connection to one BBTK, from port open to break + close."""

    def __init__(self, transport: Any, config: Optional[BbtkConfig] = None) -> None:
        self.config = config or BbtkConfig()
        self.transport = transport
        self.protocol = LineProtocol(
            transport,
            settle_sec=self.config.timing.command_settle_sec,
            line_timeout_sec=self.config.read_timeout_sec,
            debug=self.config.debug,
        )
        self.alive = False
        self._thresholds: Optional[ThresholdSet] = None
        self._smoothing: Optional[SmoothingMask] = None

    @classmethod
    def open(cls, config: BbtkConfig) -> "BbtkSession":
        transport = SerialTransport.open(
            config.port,
            config.baudrate,
            timeout=config.read_timeout_sec,
        )
        return cls(transport, config)

    def __enter__(self) -> "BbtkSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def thresholds(self) -> Optional[ThresholdSet]:
        """Thresholds last written by this session; the device has no read-back."""

        return self._thresholds

    @property
    def smoothing(self) -> Optional[SmoothingMask]:
        return self._smoothing

    def close(self) -> None:
        if not self.transport.is_open:
            return
        timing = self.config.timing
        try:
            self.transport.send_break(timing.break_duration_sec, timing.break_settle_sec)
        except DeviceIOError as exc:
            logger.warning("Closing without break: %s", exc)
        finally:
            self.transport.close()
            self.alive = False

    def wake(self) -> None:
        """Send a break to a possibly stuck device, then drop stale input."""

        timing = self.config.timing
        self.transport.send_break(timing.break_duration_sec, timing.break_settle_sec)
        self.reset_buffers()

    def reset_buffers(self) -> None:
        self.protocol.discard_buffered()

    def execute(self, command: Union[CommandSpec, str], *arguments: str) -> Optional[str]:
        """Send one catalogue command (plus argument lines) and handle its reply."""

        spec = CATALOGUE[command] if isinstance(command, str) else command
        self.protocol.send_command(spec.mnemonic)
        for argument in arguments:
            self.protocol.send_command(argument)

        reply: Optional[str] = None
        if spec.reply is ReplyPolicy.EXACT:
            reply = self.protocol.read_line()
            if reply not in spec.expect:
                raise ProtocolMismatch(spec.mnemonic, spec.expect, reply)
        elif spec.reply is ReplyPolicy.VERBATIM:
            reply = self.protocol.read_line()
        elif spec.reply is ReplyPolicy.POLL:
            reply = self._poll(spec)

        if spec.commit_wait:
            time.sleep(self.config.timing.commit_wait_sec)
        return reply

    def connect(self) -> None:
        logger.debug("Trying to connect to BBTK...")
        self.execute(commands.CONNECT)
        logger.info("Connected to BBTK")

    def check_alive(self) -> bool:
        """
        Send `ECHO` and expect it back.

        A wrong reply clears `alive` and raises ProtocolMismatch (whose
        `responded` is True); transport errors propagate and leave `alive`
        as it was.
        """

        try:
            self.execute(commands.ECHO)
        except ProtocolMismatch:
            self.alive = False
            raise
        self.alive = True
        return True

    def set_smoothing(self, mask: SmoothingMask = DEFAULT_SMOOTHING) -> None:
        self.execute(commands.SET_SMOOTHING, mask.encode())
        self._smoothing = mask
        logger.info("Smoothing mask set to %s", mask.encode())

    def flush(self) -> None:
        self.execute(commands.FLUSH)

    def firmware_version(self) -> str:
        try:
            return self.execute(commands.FIRMWARE) or ""
        except (ProtocolTimeout, DeviceIOError) as exc:
            logger.warning("Firmware version query failed: %s", exc)
            return ""

    def adjust_thresholds(self) -> None:
        """Run the on-device threshold calibration; ends when the operator finishes it."""

        logger.info("Adjust thresholds on the BBTK, waiting for it to report completion")
        self.execute(commands.ADJUST_THRESHOLDS)

    def set_thresholds(self, thresholds: ThresholdSet = DEFAULT_THRESHOLDS) -> None:
        values = thresholds.commands()[1:]
        self.execute(commands.SET_THRESHOLDS, *values)
        self._thresholds = thresholds
        logger.info("Thresholds set to %s", thresholds)

    def clear_timing_data(self) -> None:
        logger.info("Clearing timing data")
        self.execute(commands.CLEAR_TIMING_DATA)

    def display_info(self) -> None:
        self.execute(commands.DISPLAY_INFO)

    def capture(self, duration_sec: Optional[float] = None) -> CaptureResult:
        controller = CaptureController(self.protocol, self.config)
        return controller.run(duration_sec if duration_sec is not None else self.config.duration_sec)

    def _poll(self, spec: CommandSpec) -> str:
        timing = self.config.timing
        deadline = None
        if timing.poll_max_wait_sec is not None:
            deadline = time.monotonic() + timing.poll_max_wait_sec
        expected = " or ".join(f'"{token}"' for token in spec.expect)

        if spec.preamble:
            first = self._next_line(spec, deadline)
            if first not in spec.preamble:
                wanted = " or ".join(f'"{token}"' for token in spec.preamble)
                logger.warning('%s: expected %s, got "%s"', spec.mnemonic, wanted, first)

        while True:
            line = self._next_line(spec, deadline)
            if line in spec.expect:
                return line
            logger.log(spec.progress_level, '%s: expected %s, got "%s"', spec.mnemonic, expected, line)
            self._check_deadline(spec, deadline)
            time.sleep(timing.poll_interval_sec)

    def _next_line(self, spec: CommandSpec, deadline: Optional[float]) -> str:
        while True:
            try:
                return self.protocol.read_line()
            except ProtocolTimeout:
                self._check_deadline(spec, deadline)
                logger.debug("%s: device still busy", spec.mnemonic)

    def _check_deadline(self, spec: CommandSpec, deadline: Optional[float]) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise ProtocolTimeout(
                f"{spec.mnemonic}: no {'/'.join(spec.expect)} within "
                f"{self.config.timing.poll_max_wait_sec:.1f} s"
            )
