from __future__ import annotations

import logging
import time
from typing import Any, Optional

import serial  # type: ignore[import]

from .errors import DeviceConnectionError, DeviceIOError

logger = logging.getLogger(__name__)


class SerialTransport:
    """Byte-level duplex channel to the BBTK over a pyserial port (8-N-1)."""

    def __init__(self, handle: Any, address: str = "") -> None:
        self._handle = handle
        self.address = address or getattr(handle, "port", "") or ""

    @classmethod
    def open(cls, address: str, baudrate: int, timeout: float = 1.0) -> "SerialTransport":
        try:
            handle = serial.Serial(
                port=address,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout,
                write_timeout=timeout,
                exclusive=True,
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            raise DeviceConnectionError(
                f"Error while trying to open BBTK at {address} at {baudrate} bps: {exc}"
            ) from exc
        logger.info("Opened %s at %d bps", address, baudrate)
        return cls(handle, address)

    @property
    def is_open(self) -> bool:
        return self._handle is not None and bool(getattr(self._handle, "is_open", True))

    @property
    def in_waiting(self) -> int:
        handle = self._require_open()
        try:
            return int(handle.in_waiting)
        except (serial.SerialException, OSError) as exc:
            raise DeviceIOError(f"Cannot query input buffer on {self.address}: {exc}") from exc

    def write(self, data: bytes) -> None:
        handle = self._require_open()
        try:
            handle.write(data)
            handle.flush()
        except (serial.SerialException, OSError) as exc:
            raise DeviceIOError(f"Write to {self.address} failed: {exc}") from exc

    def read(self, size: int) -> bytes:
        """Read up to `size` bytes; an empty result means the read timed out."""

        handle = self._require_open()
        try:
            return bytes(handle.read(size))
        except (serial.SerialException, OSError) as exc:
            raise DeviceIOError(f"Read from {self.address} failed: {exc}") from exc

    def reset_buffers(self) -> None:
        handle = self._require_open()
        try:
            handle.reset_input_buffer()
            handle.reset_output_buffer()
        except (serial.SerialException, OSError, AttributeError) as exc:
            raise DeviceIOError(f"Cannot reset buffers on {self.address}: {exc}") from exc

    def send_break(self, duration: float = 0.01, settle: float = 1.0) -> None:
        handle = self._require_open()
        logger.debug("Sending serial break on %s", self.address)
        try:
            handle.send_break(duration=duration)
        except (serial.SerialException, OSError) as exc:
            raise DeviceIOError(f"Cannot send break on {self.address}: {exc}") from exc
        time.sleep(settle)

    def close(self) -> None:
        handle: Optional[Any] = self._handle
        self._handle = None
        if handle is None:
            return
        try:
            handle.close()
        except (serial.SerialException, OSError) as exc:
            logger.debug("Ignoring error while closing %s: %s", self.address, exc)

    def _require_open(self) -> Any:
        if self._handle is None:
            raise DeviceIOError(f"Port {self.address or '?'} is closed")
        return self._handle
