"""Host-side driver for the Black Box ToolKit v2 timing device."""

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - fallback when package metadata missing
    __version__ = version("bbtk")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

from .capture import CaptureController, CaptureResult, CaptureState
from .config import BbtkConfig, CaptureConfig, TimingConfig, build_config
from .errors import (
    BbtkError,
    CaptureTimeout,
    DeviceConnectionError,
    DeviceIOError,
    ProtocolMismatch,
    ProtocolTimeout,
)
from .models import DEFAULT_SMOOTHING, DEFAULT_THRESHOLDS, SmoothingMask, ThresholdSet
from .session import BbtkSession

__all__ = [
    "__version__",
    "BbtkConfig",
    "CaptureConfig",
    "TimingConfig",
    "build_config",
    "BbtkError",
    "CaptureTimeout",
    "DeviceConnectionError",
    "DeviceIOError",
    "ProtocolMismatch",
    "ProtocolTimeout",
    "DEFAULT_SMOOTHING",
    "DEFAULT_THRESHOLDS",
    "SmoothingMask",
    "ThresholdSet",
    "BbtkSession",
    "CaptureController",
    "CaptureResult",
    "CaptureState",
]
