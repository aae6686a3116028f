"""Exception hierarchy raised by the BBTK driver."""
from __future__ import annotations

from typing import Sequence


class BbtkError(Exception):
    """Base class for every driver error."""


class DeviceConnectionError(BbtkError, ConnectionError):
    """The serial port could not be opened or configured."""


class DeviceIOError(BbtkError, OSError):
    """A read, write or control operation failed on an open port."""


class ProtocolTimeout(BbtkError):
    """No line terminator arrived within the read timeout.

    Not an ``OSError``: a timeout is worth retrying, a transport failure is not.
    """

    def __init__(self, message: str, partial: bytes = b"") -> None:
        super().__init__(message)
        self.partial = partial


class CaptureTimeout(ProtocolTimeout):
    """The capture drain stopped before the completion marker was seen."""


class ProtocolMismatch(BbtkError):
    def __init__(
        self,
        command: str,
        expected: Sequence[str],
        received: str,
        *,
        responded: bool = True,
    ) -> None:
        self.command = command
        self.expected = tuple(expected)
        self.received = received
        self.responded = responded
        wanted = " or ".join(f'"{token}"' for token in self.expected)
        super().__init__(f'{command}: expected {wanted}, got "{received}"')

