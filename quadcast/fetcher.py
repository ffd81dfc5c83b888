"""Segment retrieval over HTTP(S).

``fetch`` never raises on network trouble. A missing segment (non-2xx) and a
transport failure both come back as ``FetchResult(ok=False)``; the playback
loop treats either as the end of the stream. The reason is kept so callers
can tell them apart in logs.
"""

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests

from quadcast.segment_store import SegmentStore

logger = logging.getLogger(__name__)


class FetchReason(enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class FetchResult:
    ok: bool
    reason: FetchReason
    duration: float = 0.0
    status: int | None = None


class SegmentFetcher:
    def __init__(
        self,
        base_url: str,
        quadrant: int,
        store: SegmentStore,
        ext: str = "txt",
        timeout: float = 10.0,
        user_agent: str = "quadcast",
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url
        self.quadrant = quadrant
        self.store = store
        self.ext = ext
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self.clock = clock
        self.last_fetch_duration = 0.0

    def url_for(self, index: int) -> str:
        return f"{self.base_url}{index}_q{self.quadrant}.{self.ext}"

    def fetch(self, index: int, dest: Path) -> FetchResult:
        """Download segment ``index`` into ``dest``."""
        url = self.url_for(index)
        start = self.clock()
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Segment {index}: transport error fetching {url}: {e}")
            return FetchResult(False, FetchReason.TRANSPORT_ERROR)

        if not 200 <= resp.status_code < 300:
            logger.info(f"Segment {index}: HTTP {resp.status_code} from {url}")
            return FetchResult(False, FetchReason.NOT_FOUND, status=resp.status_code)

        try:
            self.store.write(dest, resp.content)
        except OSError as e:
            logger.error(f"Segment {index}: cannot store to {dest}: {e}")
            return FetchResult(False, FetchReason.TRANSPORT_ERROR, status=resp.status_code)

        duration = self.clock() - start
        self.last_fetch_duration = duration
        logger.debug(f"Segment {index}: {len(resp.content)} bytes in {duration * 1000:.0f}ms")
        return FetchResult(True, FetchReason.OK, duration=duration, status=resp.status_code)

    def close(self) -> None:
        self.session.close()
