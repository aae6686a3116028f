"""Catalogue of BBTK commands and how their replies are handled."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Tuple


class ReplyPolicy(str, enum.Enum):
    NONE = "none"  # nothing is read back
    EXACT = "exact"  # one line, must equal one of `expect`
    VERBATIM = "verbatim"  # one line, returned as-is
    POLL = "poll"  # lines are read until one equals `expect`


@dataclass(frozen=True)
class CommandSpec:
    mnemonic: str
    reply: ReplyPolicy = ReplyPolicy.NONE
    expect: Tuple[str, ...] = ()
    # first reply line of a POLL command; anything else is only warned about
    preamble: Tuple[str, ...] = ()
    commit_wait: bool = False
    # log level for intermediate lines seen while polling
    progress_level: int = logging.WARNING

    def __post_init__(self) -> None:
        if self.reply in (ReplyPolicy.EXACT, ReplyPolicy.POLL) and not self.expect:
            raise ValueError(f"{self.mnemonic}: {self.reply.value} reply needs an expected token")
        if self.preamble and self.reply is not ReplyPolicy.POLL:
            raise ValueError(f"{self.mnemonic}: a preamble only applies to polled replies")


CONNECT = CommandSpec("CONN", ReplyPolicy.EXACT, expect=("BBTK;",))
ECHO = CommandSpec("ECHO", ReplyPolicy.EXACT, expect=("ECHO",))
SET_SMOOTHING = CommandSpec("SMOO")
FLUSH = CommandSpec("FLUS", commit_wait=True)
FIRMWARE = CommandSpec("FIRM", ReplyPolicy.VERBATIM)
ADJUST_THRESHOLDS = CommandSpec(
    "AJPV", ReplyPolicy.POLL, expect=("Done;",), progress_level=logging.INFO
)
SET_THRESHOLDS = CommandSpec("SEPV", commit_wait=True)
CLEAR_TIMING_DATA = CommandSpec(
    "SPIE",
    ReplyPolicy.POLL,
    expect=("DONE;",),
    preamble=("FRMT;", "ESEC;"),
    commit_wait=True,
)
DISPLAY_INFO = CommandSpec("ABOU", commit_wait=True)

# digital capture
DIGITAL_CAPTURE_MODE = CommandSpec("DSCM")
TIMED_LIMIT_MODE = CommandSpec("TIML")
RUN_DIGITAL_SAMPLE = CommandSpec("RUDS")
END_OF_DATA = "EDAT"

CATALOGUE = {
    spec.mnemonic: spec
    for spec in (
        CONNECT,
        ECHO,
        SET_SMOOTHING,
        FLUSH,
        FIRMWARE,
        ADJUST_THRESHOLDS,
        SET_THRESHOLDS,
        CLEAR_TIMING_DATA,
        DISPLAY_INFO,
        DIGITAL_CAPTURE_MODE,
        TIMED_LIMIT_MODE,
        RUN_DIGITAL_SAMPLE,
    )
}
