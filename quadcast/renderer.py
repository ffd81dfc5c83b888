"""Frame renderers.

Both renderers take one frame (``height`` row strings) and draw it on their
surface, returning how many surface writes they issued.

RawRenderer rows are pre-encoded blit rows: ``text + fg + bg``, each part
``width`` characters, fg/bg being palette hex digits. They are written as-is.

DiffRenderer rows are ``width`` palette hex digits, one per pixel. The
decoded grid is compared against the previous frame and only changed pixels
are written; an unchanged background costs nothing and does not flicker.
"""

import logging

import numpy as np

from quadcast import display
from quadcast.display import BACKGROUND, HEX_DIGITS, DisplaySurface
from quadcast.errors import DecodeError

logger = logging.getLogger(__name__)

# ASCII code -> palette index, -1 for anything that is not a hex digit
_HEX_LUT = np.full(128, -1, dtype=np.int16)
for _i, _ch in enumerate(HEX_DIGITS):
    _HEX_LUT[ord(_ch)] = _i
    _HEX_LUT[ord(_ch.upper())] = _i


class Renderer:
    def __init__(self, surface: DisplaySurface):
        self.surface = surface

    def reset(self) -> None:
        """Forget any state carried between frames."""

    def draw(self, frame_lines: list[str], width: int, height: int) -> int:
        raise NotImplementedError


class RawRenderer(Renderer):
    def draw(self, frame_lines: list[str], width: int, height: int) -> int:
        writes = 0
        with display.redirect(self.surface) as out:
            out.set_grid(width, height)
            for y, line in enumerate(frame_lines[:height], start=1):
                out.blit(1, y, line[:width], line[width:2 * width], line[2 * width:3 * width])
                writes += 1
            out.flush()
        return writes


def parse_pixel_rows(frame_lines: list[str], width: int, height: int) -> np.ndarray:
    """Decode hex-digit rows into a (height, width) array of palette indices.

    Short rows (and missing rows) are padded with the background colour.
    """
    grid = np.full((height, width), BACKGROUND, dtype=np.uint8)
    for y, line in enumerate(frame_lines[:height]):
        row = line[:width]
        if not row:
            continue
        codes = np.frombuffer(row.encode("utf-8", errors="replace"), dtype=np.uint8)
        if len(codes) != len(row):
            raise DecodeError(f"Non-ASCII pixel data in row {y + 1}")
        values = _HEX_LUT[np.minimum(codes, 127)]
        if (values < 0).any():
            bad = row[int(np.argmax(values < 0))]
            raise DecodeError(f"Invalid pixel colour {bad!r} in row {y + 1}")
        grid[y, :len(row)] = values
    return grid


class DiffRenderer(Renderer):
    def __init__(self, surface: DisplaySurface):
        super().__init__(surface)
        self.previous: np.ndarray | None = None

    def reset(self) -> None:
        self.previous = None

    def draw(self, frame_lines: list[str], width: int, height: int) -> int:
        grid = parse_pixel_rows(frame_lines, width, height)
        if self.previous is None or self.previous.shape != grid.shape:
            changed = np.argwhere(np.ones_like(grid, dtype=bool))
        else:
            changed = np.argwhere(grid != self.previous)

        with display.redirect(self.surface) as out:
            out.set_grid(width, height)
            for y, x in changed:
                out.set_pixel(int(x) + 1, int(y) + 1, int(grid[y, x]))
            out.flush()

        self.previous = grid
        return len(changed)


def make_renderer(mode: str, surface: DisplaySurface) -> Renderer:
    if mode == "raw":
        return RawRenderer(surface)
    if mode == "diff":
        return DiffRenderer(surface)
    raise ValueError(f"Unknown render mode {mode!r}")
