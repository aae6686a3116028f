"""Split a raw digital capture into its header fields and event lines."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

START_OF_DATA = "SDAT;"
END_OF_DATA_LINE = "EDAT"


@dataclass(frozen=True)
class CapturePayload:
    event_count: int
    capture_time: int
    sample_count: int
    events: Tuple[str, ...]


def parse_capture(text: str) -> CapturePayload:
    """Parse the text returned by a capture.

    The device sends `SDAT;`, the event count, the capture time, the sample
    count, one line per event, then `EDAT;`. Event lines are kept verbatim.
    """

    lines = [line.strip() for line in text.replace("\r", "").split("\n")]
    try:
        start = lines.index(START_OF_DATA)
    except ValueError as exc:
        raise ValueError(f"Capture has no {START_OF_DATA} line") from exc
    header = lines[start + 1 : start + 4]
    if len(header) < 3:
        raise ValueError("Capture header is truncated")
    try:
        event_count, capture_time, sample_count = (int(value) for value in header)
    except ValueError as exc:
        raise ValueError(f"Capture header fields must be integers: {header}") from exc

    events: List[str] = []
    for line in lines[start + 4 :]:
        if line.startswith(END_OF_DATA_LINE):
            break
        if line:
            events.append(line)
    else:
        raise ValueError(f"Capture has no {END_OF_DATA_LINE} line")
    return CapturePayload(
        event_count=event_count,
        capture_time=capture_time,
        sample_count=sample_count,
        events=tuple(events),
    )
