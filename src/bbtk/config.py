from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union, get_args, get_origin, get_type_hints

DEFAULT_PORT = "/dev/ttyACM0"
DEFAULT_BAUDRATE = 57600
DEFAULT_DURATION_SEC = 30.0


@dataclass
class TimingConfig:
    command_settle_sec: float = 0.05
    break_duration_sec: float = 0.01
    break_settle_sec: float = 1.0
    commit_wait_sec: float = 1.0
    poll_interval_sec: float = 0.1
    poll_max_wait_sec: Optional[float] = None  # None waits for the operator

    def validate(self) -> None:
        for name in (
            "command_settle_sec",
            "break_duration_sec",
            "break_settle_sec",
            "commit_wait_sec",
            "poll_interval_sec",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"timing.{name} may not be negative, got {getattr(self, name)}")
        if self.poll_max_wait_sec is not None and self.poll_max_wait_sec <= 0:
            raise ValueError("timing.poll_max_wait_sec must be positive or none")


@dataclass
class CaptureConfig:
    chunk_size: int = 100
    lead_time_sec: float = 1.0
    max_idle_reads: Optional[int] = 30
    drain_deadline_sec: Optional[float] = None

    def validate(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("capture.chunk_size must be positive")
        if self.lead_time_sec < 0:
            raise ValueError("capture.lead_time_sec may not be negative")
        if self.max_idle_reads is not None and self.max_idle_reads <= 0:
            raise ValueError("capture.max_idle_reads must be positive or none")
        if self.drain_deadline_sec is not None and self.drain_deadline_sec <= 0:
            raise ValueError("capture.drain_deadline_sec must be positive or none")


@dataclass
class BbtkConfig:
    port: str = DEFAULT_PORT
    baudrate: int = DEFAULT_BAUDRATE
    read_timeout_sec: float = 1.0
    duration_sec: float = DEFAULT_DURATION_SEC
    debug: bool = False
    timing: TimingConfig = field(default_factory=TimingConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.baudrate <= 0:
            raise ValueError(f"baudrate must be positive, got {self.baudrate}")
        if self.read_timeout_sec <= 0:
            raise ValueError("read_timeout_sec must be positive so reads never block forever")
        if self.duration_sec <= 0:
            raise ValueError(f"duration_sec must be positive, got {self.duration_sec}")
        self.timing.validate()
        self.capture.validate()


def build_config(overrides: Sequence[str] | None = None, **scalars: Any) -> BbtkConfig:
    """
    Build a driver configuration from scalar arguments and CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["timing.poll_interval_sec=0.2", "capture.max_idle_reads=none"]
    Scalar keyword arguments set top-level fields and are applied first;
    keyword arguments whose value is None are ignored.
    """
    config = BbtkConfig()
    for key, value in scalars.items():
        if value is None:
            continue
        _assign_dotted(config, key, value)
    for override in overrides or []:
        key, value = _split_override(override)
        _assign_dotted(config, key, value)
    config.validate()
    return config


def config_to_dict(config: BbtkConfig) -> Dict[str, Any]:
    def convert(obj: Any) -> Any:
        if is_dataclass(obj):
            return {f.name: convert(getattr(obj, f.name)) for f in fields(obj)}
        return obj

    return convert(config)


def _split_override(item: str) -> Tuple[str, str]:
    key, sep, raw = item.partition("=")
    if not sep:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    return key, raw.strip()


def _assign_dotted(config: BbtkConfig, dotted_key: str, value: Any) -> None:
    cursor: Any = config
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = _child(cursor, part, dotted_key)
        if not is_dataclass(cursor):
            raise ValueError(f"Unknown configuration section '{part}' in '{dotted_key}'")
    leaf = parts[-1]
    if leaf not in {f.name for f in fields(cursor)}:
        raise ValueError(f"Unknown configuration key '{dotted_key}'")
    if is_dataclass(getattr(cursor, leaf)):
        raise ValueError(f"'{dotted_key}' is a section, set one of its keys instead")
    kind, optional = _declared_type(type(cursor), leaf)
    setattr(cursor, leaf, _convert(value, kind, optional, dotted_key))


def _child(obj: Any, name: str, dotted_key: str) -> Any:
    if not is_dataclass(obj) or name not in {f.name for f in fields(obj)}:
        raise ValueError(f"Unknown configuration key '{dotted_key}'")
    return getattr(obj, name)


def _declared_type(section: type, name: str) -> Tuple[type, bool]:
    """Return the field's scalar type and whether it accepts none."""

    hint = get_type_hints(section)[name]
    if get_origin(hint) is Union:
        members = [arg for arg in get_args(hint) if arg is not type(None)]
        return members[0], len(members) < len(get_args(hint))
    return hint, False


def _convert(value: Any, kind: type, optional: bool, dotted_key: str) -> Any:
    if isinstance(value, str) and kind is not str:
        value = _parse_text(value, kind, dotted_key)
    if value is None:
        if not optional:
            raise ValueError(f"'{dotted_key}' may not be none")
        return None
    if kind is bool:
        if not isinstance(value, bool):
            raise ValueError(f"'{dotted_key}' expects true or false, got {value!r}")
        return value
    if isinstance(value, bool):
        raise ValueError(f"'{dotted_key}' expects {kind.__name__}, got {value!r}")
    if kind is float and isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"'{dotted_key}' expects a finite number, got {value!r}")
        return float(value)
    if kind is int and isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, kind):
        return value
    raise ValueError(f"'{dotted_key}' expects {kind.__name__}, got {value!r}")


def _parse_text(text: str, kind: type, dotted_key: str) -> Any:
    lowered = text.lower()
    if lowered in {"none", "null"}:
        return None
    if kind is bool:
        if lowered not in {"true", "false"}:
            raise ValueError(f"'{dotted_key}' expects true or false, got {text!r}")
        return lowered == "true"
    try:
        return kind(text)
    except ValueError:
        if kind is int:
            try:
                return float(text)
            except ValueError:
                pass
        raise ValueError(f"'{dotted_key}' expects {kind.__name__}, got {text!r}") from None
