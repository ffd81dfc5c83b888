"""Frame cadence and the synchronized segment timeline.

All four tiles begin fetching segment 1 independently and never talk to each
other. They stay aligned because every segment's start time is derived from
the run's start (t0) by a fixed duration table, not from a fresh clock read:

    start_for(1) = t0
    start_for(N) = t0 + D1 + (N - 2) * D2      for N >= 2

Times are seconds on the monotonic clock.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 0.2
FIRST_SEGMENT_DURATION = 38.0  # D1
SEGMENT_DURATION = 45.0        # D2


@dataclass
class PlaybackSession:
    t0: float
    index: int = 1
    first_duration: float = FIRST_SEGMENT_DURATION
    duration: float = SEGMENT_DURATION

    def duration_for(self, n: int) -> float:
        if n < 1:
            raise ValueError(f"Segment index must be >= 1, got {n}")
        return self.first_duration if n == 1 else self.duration

    def start_for(self, n: int) -> float:
        if n < 1:
            raise ValueError(f"Segment index must be >= 1, got {n}")
        if n == 1:
            return self.t0
        return self.t0 + self.first_duration + (n - 2) * self.duration

    def end_for(self, n: int) -> float:
        return self.start_for(n) + self.duration_for(n)

    def advance(self) -> int:
        self.index += 1
        return self.index


class FramePacer:
    """Computes the sleep that holds a fixed frame interval.

    The last fetch's duration is spread evenly over the segment's frames so
    one slow download is paid back a little per frame instead of as a stall.
    """

    def __init__(self, frame_interval: float = FRAME_INTERVAL, clock: Callable[[], float] = time.monotonic):
        self.frame_interval = frame_interval
        self.clock = clock

    def next_sleep(
        self,
        frame_start: float,
        processing_elapsed: float | None,
        fetch_duration: float,
        frames_per_segment: int,
    ) -> float:
        if processing_elapsed is None:
            processing_elapsed = self.clock() - frame_start
        amortized = fetch_duration / frames_per_segment if frames_per_segment > 0 else 0.0
        sleep = self.frame_interval - processing_elapsed - amortized
        if sleep < 0:
            logger.debug(f"Frame underrun by {-sleep * 1000:.0f}ms")
            return 0.0
        return sleep
