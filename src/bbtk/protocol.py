from __future__ import annotations

import logging
import time
from typing import Any, Optional

from .errors import ProtocolTimeout

COMMAND_TERMINATOR = b"\r\n"
LINE_TERMINATOR = b"\n"

logger = logging.getLogger(__name__)


class LineProtocol:
    """
    Frames outgoing commands with CRLF and splits replies on LF.

    Bytes received past a line terminator are kept for the next `read_line`
    or `read_chunk`, so switching from line reads to streaming reads loses
    nothing.
    """

    def __init__(
        self,
        transport: Any,
        *,
        settle_sec: float = 0.05,
        line_timeout_sec: Optional[float] = None,
        debug: bool = False,
    ) -> None:
        self.transport = transport
        self.settle_sec = settle_sec
        self.line_timeout_sec = line_timeout_sec
        self.debug = debug
        self._buffer = bytearray()

    def send_command(self, text: str) -> None:
        if self.debug:
            logger.debug('SendCommand: "%s"', text)
        try:
            payload = text.encode("ascii") + COMMAND_TERMINATOR
        except UnicodeEncodeError as exc:
            raise ValueError(f"Command {text!r} is not plain ASCII") from exc
        try:
            self.transport.write(payload)
        finally:
            # the device needs this gap whatever happens next
            time.sleep(self.settle_sec)

    def read_line(self) -> str:
        deadline = None
        if self.line_timeout_sec is not None:
            deadline = time.monotonic() + self.line_timeout_sec
        while True:
            idx = self._buffer.find(LINE_TERMINATOR)
            if idx >= 0:
                raw = bytes(self._buffer[:idx])
                del self._buffer[: idx + 1]
                line = raw.rstrip(b"\r").decode("ascii", errors="replace")
                if self.debug:
                    logger.debug('ReadLine: got "%s"', line)
                return line
            waiting = self.transport.in_waiting
            chunk = self.transport.read(max(waiting, 1))
            expired = deadline is not None and time.monotonic() >= deadline
            self._buffer.extend(chunk)
            if not chunk or (expired and LINE_TERMINATOR not in chunk):
                raise ProtocolTimeout(
                    f"No line terminator within read timeout (partial={bytes(self._buffer)!r})",
                    partial=bytes(self._buffer),
                )

    def read_chunk(self, size: int) -> bytes:
        if self._buffer:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data
        return self.transport.read(size)

    def discard_buffered(self) -> None:
        self._buffer.clear()
        self.transport.reset_buffers()
