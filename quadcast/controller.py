"""Playback state machine: fetch, fetch-ahead, paced render, transition.

One run plays segments 1, 2, 3, ... until a fetch fails (end of stream) or a
segment cannot be decoded. While segment N renders, segment N+1 downloads in
the background; the download is only joined at the N -> N+1 transition, so
it never delays the start of segment N.
"""

import asyncio
import enum
import logging
import time
from typing import Awaitable, Callable

from quadcast.errors import DecodeError
from quadcast.fetcher import FetchResult, SegmentFetcher
from quadcast.pacing import FramePacer, PlaybackSession
from quadcast.renderer import Renderer
from quadcast.segment_store import Segment, SegmentStore

logger = logging.getLogger(__name__)


class PlaybackState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PLAYING = "playing"
    STOPPED = "stopped"


class RunOutcome(enum.Enum):
    NO_SEGMENTS = "no_segments"
    END_OF_STREAM = "end_of_stream"
    DECODE_ERROR = "decode_error"


class PlaybackController:
    def __init__(
        self,
        fetcher: SegmentFetcher,
        store: SegmentStore,
        renderer: Renderer,
        pacer: FramePacer | None = None,
        expected_resolution: tuple[int, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.store = store
        self.renderer = renderer
        self.pacer = pacer or FramePacer(clock=clock)
        self.expected_resolution = expected_resolution
        self.clock = clock
        self.sleep = sleep
        self.state = PlaybackState.IDLE
        self.session: PlaybackSession | None = None
        self.frames_drawn = 0

    async def _fetch(self, index: int, dest) -> FetchResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fetcher.fetch, index, dest)

    async def run(self) -> RunOutcome:
        """Play the stream from segment 1 until it ends."""
        self.renderer.reset()
        self.store.clear()
        self.frames_drawn = 0
        self.session = PlaybackSession(t0=self.clock())
        self.state = PlaybackState.FETCHING
        logger.info(f"Playback started (quadrant {self.store.quadrant}), fetching segment 1")

        first = await self._fetch(1, self.store.current_path)
        if not first.ok:
            logger.warning(f"No segments available ({first.reason.value})")
            self.state = PlaybackState.STOPPED
            return RunOutcome.NO_SEGMENTS

        fetch_duration = first.duration
        resolution = self.expected_resolution
        ahead: asyncio.Future | None = None
        aborted = False
        try:
            while True:
                n = self.session.index
                ahead = asyncio.ensure_future(self._fetch(n + 1, self.store.next_path))

                self.state = PlaybackState.PLAYING
                try:
                    segment = self.store.load(self.store.current_path, index=n, expected=resolution)
                    # First segment fixes the resolution for the rest of the run
                    resolution = segment.resolution
                    await self._play(segment, fetch_duration)
                except DecodeError as e:
                    logger.error(f"Segment {n}: {e}; stopping playback")
                    await ahead
                    self.store.clear()
                    return RunOutcome.DECODE_ERROR

                self.store.delete(self.store.current_path)
                self.state = PlaybackState.FETCHING
                result = await ahead
                if not result.ok:
                    logger.info(f"End of stream after segment {n} ({result.reason.value})")
                    return RunOutcome.END_OF_STREAM

                self.store.promote()
                fetch_duration = result.duration
                self.session.advance()
        except BaseException:
            aborted = True
            raise
        finally:
            if ahead is not None and not ahead.done():
                # Let the background download finish writing before leaving
                await asyncio.wait([ahead])
            if aborted:
                self.store.clear()
            self.state = PlaybackState.STOPPED

    async def _play(self, segment: Segment, fetch_duration: float) -> int:
        """Draw a segment's frames at the fixed cadence until its deadline."""
        loop = asyncio.get_running_loop()
        n = segment.index
        width, height = segment.width, segment.height
        frames = segment.frame_count
        end = self.session.end_for(n)
        logger.info(f"Segment {n}: {width}x{height}, {frames} frames")

        drawn = writes = 0
        cursor = 0
        while cursor + height <= len(segment.body) and self.clock() < end:
            frame_start = self.clock()
            writes += await loop.run_in_executor(
                None, self.renderer.draw, segment.body[cursor:cursor + height], width, height
            )
            drawn += 1
            cursor += height
            await self.sleep(self.pacer.next_sleep(frame_start, None, fetch_duration, frames))

        if drawn < frames:
            logger.info(f"Segment {n}: deadline reached after {drawn}/{frames} frames")
        logger.info(f"Segment {n}: drew {drawn} frames, {writes} writes")
        self.frames_drawn += drawn
        return drawn
