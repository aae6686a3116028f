"""Device settings sent to the BBTK: sensor thresholds and smoothing mask."""
from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from typing import List, Tuple

from .commands import SET_THRESHOLDS

THRESHOLD_MIN = 0
THRESHOLD_MAX = 127
SMOOTHING_RESERVED_BITS = "11"
SMOOTHING_MASK_LENGTH = 8


@dataclass(frozen=True)
class ThresholdSet:
    """Activation thresholds for the eight adjustable lines.

    Mic activation threshold, sounder volume (amplitude) and opto luminance
    activation threshold. Every value lies in 0-127.
    """

    mic1: int
    mic2: int
    sounder1: int
    sounder2: int
    opto1: int
    opto2: int
    opto3: int
    opto4: int

    WIRE_ORDER = ("mic1", "mic2", "sounder1", "sounder2", "opto1", "opto2", "opto3", "opto4")

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Threshold {item.name} must be an integer, got {value!r}")
            if not THRESHOLD_MIN <= value <= THRESHOLD_MAX:
                raise ValueError(
                    f"Threshold {item.name}={value} outside {THRESHOLD_MIN}-{THRESHOLD_MAX}"
                )

    @classmethod
    def parse(cls, text: str) -> "ThresholdSet":
        """Build from a comma separated list given in wire order."""

        parts = [part.strip() for part in text.split(",")]
        if len(parts) != len(cls.WIRE_ORDER):
            raise ValueError(
                f"Expected {len(cls.WIRE_ORDER)} comma separated thresholds, got {len(parts)}"
            )
        try:
            values = [int(part) for part in parts]
        except ValueError as exc:
            raise ValueError(f"Thresholds must be integers: {text!r}") from exc
        return cls(**dict(zip(cls.WIRE_ORDER, values)))

    def wire_values(self) -> Tuple[int, ...]:
        return tuple(getattr(self, name) for name in self.WIRE_ORDER)

    def commands(self) -> List[str]:
        """`SEPV` followed by the eight values as bare decimal strings."""

        return [SET_THRESHOLDS.mnemonic] + [str(value) for value in self.wire_values()]

    def __str__(self) -> str:
        return ",".join(str(value) for value in self.wire_values())


@dataclass(frozen=True)
class SmoothingMask:
    """Leading-edge smoothing per sensor line.

    With smoothing off the BBTK reports every leading edge, e.g. each refresh
    of a CRT. With smoothing on, 20 ms must be subtracted from offset times.
    """

    mic1: bool
    mic2: bool
    opto1: bool
    opto2: bool
    opto3: bool
    opto4: bool

    WIRE_ORDER = ("mic1", "mic2", "opto4", "opto3", "opto2", "opto1")

    def __post_init__(self) -> None:
        for name, value in zip((f.name for f in fields(self)), astuple(self)):
            if not isinstance(value, bool):
                raise ValueError(f"Smoothing flag {name} must be a bool, got {value!r}")

    @classmethod
    def parse(cls, bits: str) -> "SmoothingMask":
        """Accept the six channel bits in wire order, or a full 8-bit mask."""

        bits = bits.strip()
        channel_count = len(cls.WIRE_ORDER)
        if len(bits) == SMOOTHING_MASK_LENGTH:
            if not bits.endswith(SMOOTHING_RESERVED_BITS):
                raise ValueError(f"Reserved smoothing bits must be '{SMOOTHING_RESERVED_BITS}': {bits!r}")
            bits = bits[:channel_count]
        if len(bits) != channel_count or set(bits) - {"0", "1"}:
            raise ValueError(f"Smoothing mask must be {channel_count} or 8 characters of 0/1, got {bits!r}")
        return cls(**{name: bit == "1" for name, bit in zip(cls.WIRE_ORDER, bits)})

    def encode(self) -> str:
        channel_bits = "".join("1" if getattr(self, name) else "0" for name in self.WIRE_ORDER)
        return channel_bits + SMOOTHING_RESERVED_BITS

    def __str__(self) -> str:
        return self.encode()


DEFAULT_THRESHOLDS = ThresholdSet(
    mic1=0,
    mic2=0,
    sounder1=63,
    sounder2=63,
    opto1=110,
    opto2=110,
    opto3=110,
    opto4=110,
)

DEFAULT_SMOOTHING = SmoothingMask(
    mic1=True,
    mic2=True,
    opto1=False,
    opto2=False,
    opto3=False,
    opto4=False,
)
