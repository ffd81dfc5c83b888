"""Local storage and decoding of segment files.

A segment file is line-oriented text. The first line is the header
``"<width> <height>"``; every following line is one display row, and rows
are grouped into frames of ``height`` consecutive lines. A trailing block
shorter than ``height`` is not a frame and is ignored.

Only two files ever exist on disk: the segment being played ("current") and
the one fetched ahead ("next"). Both are reused across playback runs.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from quadcast.errors import DecodeError

logger = logging.getLogger(__name__)

HEADER_RE = re.compile(r"^\s*(\d+) (\d+)\s*$")


@dataclass
class Segment:
    index: int
    quadrant: int
    width: int
    height: int
    body: list[str] = field(repr=False)

    @property
    def resolution(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def frame_count(self) -> int:
        return len(self.body) // self.height

    def frame(self, i: int) -> list[str]:
        start = i * self.height
        return self.body[start:start + self.height]

    def frames(self) -> Iterator[list[str]]:
        for i in range(self.frame_count):
            yield self.frame(i)


def parse_header(line: str) -> tuple[int, int]:
    """Parse the ``"<width> <height>"`` header line."""
    match = HEADER_RE.match(line)
    if not match:
        raise DecodeError(f"Invalid segment header {line[:40]!r}")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise DecodeError(f"Segment resolution must be positive, got {width}x{height}")
    return width, height


def decode(
    lines: list[str],
    index: int = 0,
    quadrant: int = 0,
    expected: tuple[int, int] | None = None,
) -> Segment:
    """Build a Segment from raw lines (header first)."""
    if not lines:
        raise DecodeError(f"Segment {index} is empty")
    width, height = parse_header(lines[0])
    if expected is not None and (width, height) != tuple(expected):
        raise DecodeError(
            f"Segment {index} is {width}x{height}, expected {expected[0]}x{expected[1]}"
        )
    return Segment(index=index, quadrant=quadrant, width=width, height=height, body=lines[1:])


class SegmentStore:
    """The two ephemeral segment slots under one directory."""

    def __init__(self, directory: str | os.PathLike, quadrant: int = 0):
        self.directory = Path(directory)
        self.quadrant = quadrant
        self.current_path = self.directory / f"current_q{quadrant}.seg"
        self.next_path = self.directory / f"next_q{quadrant}.seg"

    def ensure_dir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def write(self, path: Path, data: bytes) -> None:
        """Write ``data`` to ``path`` so that readers only ever see a complete file."""
        self.ensure_dir()
        tmp = path.with_name(path.name + ".part")
        try:
            with open(tmp, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def load(self, path: Path, index: int = 0, expected: tuple[int, int] | None = None) -> Segment:
        """Read and decode a stored segment."""
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise DecodeError(f"Cannot read segment {index} from {path}: {e}") from e
        return decode(lines, index=index, quadrant=self.quadrant, expected=expected)

    def promote(self) -> None:
        """Move the fetched-ahead segment into the current slot."""
        os.replace(self.next_path, self.current_path)

    def delete(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")

    def clear(self) -> None:
        for path in (self.current_path, self.next_path):
            self.delete(path)
