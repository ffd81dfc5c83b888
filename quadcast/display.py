"""Display surfaces for one mosaic tile.

A tile is a grid of character cells. Frames address it in cells: a text row
is blitted with per-cell foreground/background colours, and a "pixel" is a
single cell filled with a background colour. Colours are the 16-entry
palette indexed by hex digits ``0``-``f``.

Two surfaces share the same interface:

- FramebufferSurface draws straight into /dev/fb0 (memory-mapped), scaling
  each cell to a block of physical pixels. Glyphs are rendered with Pillow.
- MemorySurface keeps the cell grid in numpy arrays, for headless units and
  tests.

Drawing code never holds on to a surface. It calls ``redirect(surface)`` for
the duration of one draw and writes through ``current()``; the previous
target is restored as soon as the draw returns.
"""

import logging
import mmap
import os
from contextlib import contextmanager
from typing import Iterator

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from quadcast.errors import DecodeError

logger = logging.getLogger(__name__)

HEX_DIGITS = "0123456789abcdef"
BACKGROUND = 15  # "f", black

# Default 16-colour palette, indexed by hex digit
PALETTE: tuple[tuple[int, int, int], ...] = (
    (240, 240, 240),  # 0 white
    (242, 178, 51),   # 1 orange
    (229, 127, 216),  # 2 magenta
    (153, 178, 242),  # 3 light blue
    (222, 222, 108),  # 4 yellow
    (127, 204, 25),   # 5 lime
    (242, 178, 204),  # 6 pink
    (76, 76, 76),     # 7 gray
    (153, 153, 153),  # 8 light gray
    (76, 153, 178),   # 9 cyan
    (178, 102, 229),  # a purple
    (51, 102, 204),   # b blue
    (127, 102, 76),   # c brown
    (87, 166, 78),    # d green
    (204, 76, 76),    # e red
    (17, 17, 17),     # f black
)


def color_index(digit: str, default: int = BACKGROUND) -> int:
    """Palette index for a hex digit; unknown digits map to ``default``."""
    idx = HEX_DIGITS.find(digit.lower())
    return default if idx < 0 else idx


class DisplaySurface:
    """Cell-addressed drawing target. Coordinates are 1-based."""

    cols: int = 0
    rows: int = 0

    def set_grid(self, cols: int, rows: int) -> None:
        """Declare the cell grid the next draws will address."""
        self.cols, self.rows = cols, rows

    def blit(self, x: int, y: int, text: str, fg: str, bg: str) -> None:
        raise NotImplementedError

    def set_pixel(self, x: int, y: int, color: int) -> None:
        raise NotImplementedError

    def clear(self, color: int = BACKGROUND) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


_target: DisplaySurface | None = None


def current() -> DisplaySurface:
    """The surface output is currently redirected to."""
    if _target is None:
        raise RuntimeError("No display surface is active outside redirect()")
    return _target


@contextmanager
def redirect(surface: DisplaySurface) -> Iterator[DisplaySurface]:
    """Make ``surface`` the output target for the enclosed block only."""
    global _target
    previous = _target
    _target = surface
    try:
        yield surface
    finally:
        _target = previous


class MemorySurface(DisplaySurface):
    """In-memory cell grid. Counts every write it receives."""

    def __init__(self, cols: int = 0, rows: int = 0):
        self._allocate(cols, rows)
        self.blits = 0
        self.pixel_writes = 0
        self.flushes = 0

    def _allocate(self, cols: int, rows: int) -> None:
        self.cols, self.rows = cols, rows
        self.text = np.full((rows, cols), " ", dtype="<U1")
        self.fg = np.zeros((rows, cols), dtype=np.uint8)
        self.bg = np.full((rows, cols), BACKGROUND, dtype=np.uint8)

    def set_grid(self, cols: int, rows: int) -> None:
        if (cols, rows) != (self.cols, self.rows):
            self._allocate(cols, rows)

    def _in_bounds(self, x: int, y: int) -> bool:
        return 1 <= x <= self.cols and 1 <= y <= self.rows

    def blit(self, x: int, y: int, text: str, fg: str, bg: str) -> None:
        self.blits += 1
        for offset, ch in enumerate(text):
            cx = x + offset
            if not self._in_bounds(cx, y):
                continue
            self.text[y - 1, cx - 1] = ch
            self.fg[y - 1, cx - 1] = color_index(fg[offset] if offset < len(fg) else "0", 0)
            self.bg[y - 1, cx - 1] = color_index(bg[offset] if offset < len(bg) else "f")

    def set_pixel(self, x: int, y: int, color: int) -> None:
        self.pixel_writes += 1
        if self._in_bounds(x, y):
            self.text[y - 1, x - 1] = " "
            self.bg[y - 1, x - 1] = color

    def clear(self, color: int = BACKGROUND) -> None:
        self.text[:] = " "
        self.bg[:] = color

    def flush(self) -> None:
        self.flushes += 1


# Cached fonts (loaded once)
_font_cache: dict[int, ImageFont.ImageFont] = {}


def _get_font(size: int) -> ImageFont.ImageFont:
    """Load a monospace font with caching."""
    if size in _font_cache:
        return _font_cache[size]
    paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
        "/usr/share/fonts/TTF/DejaVuSansMono.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    ]
    for path in paths:
        if os.path.exists(path):
            font = ImageFont.truetype(path, size)
            _font_cache[size] = font
            return font
    font = ImageFont.load_default()
    _font_cache[size] = font
    return font


def get_fb_info(fb_name: str = "fb0", fallback: tuple[int, int] = (1024, 600)) -> tuple[int, int, int, int]:
    """Read framebuffer geometry from sysfs: (width, height, bpp, stride)."""
    fb_path = f"/sys/class/graphics/{fb_name}"
    try:
        with open(f"{fb_path}/virtual_size") as f:
            vw, vh = f.read().strip().split(",")
        with open(f"{fb_path}/bits_per_pixel") as f:
            bpp = int(f.read().strip())
        with open(f"{fb_path}/stride") as f:
            stride = int(f.read().strip())
        return int(vw), int(vh), bpp, stride
    except FileNotFoundError:
        width, height = fallback
        return width, height, 32, width * 4


def rgb_to_fb_native(rgb_array: np.ndarray, bpp: int) -> np.ndarray:
    """Convert RGB numpy array to native FB pixel format array.

    Returns uint16 (h,w) for 16bpp or uint8 (h,w,4) for 32bpp.
    """
    if bpp == 16:
        r = rgb_array[:, :, 0].astype(np.uint16)
        g = rgb_array[:, :, 1].astype(np.uint16)
        b = rgb_array[:, :, 2].astype(np.uint16)
        return (((r >> 3) << 11) | ((g >> 2) << 5) | (b >> 3)).astype(np.uint16)
    h, w = rgb_array.shape[:2]
    bgra = np.empty((h, w, 4), dtype=np.uint8)
    bgra[:, :, 0] = rgb_array[:, :, 2]
    bgra[:, :, 1] = rgb_array[:, :, 1]
    bgra[:, :, 2] = rgb_array[:, :, 0]
    bgra[:, :, 3] = 255
    return bgra


class FramebufferSurface(DisplaySurface):
    """Memory-mapped Linux framebuffer, scaled to the current cell grid."""

    def __init__(self, device: str = "/dev/fb0"):
        width, height, bpp, stride = get_fb_info(os.path.basename(device))
        fd = os.open(device, os.O_RDWR)
        buffer = mmap.mmap(fd, stride * height, mmap.MAP_SHARED, mmap.PROT_WRITE | mmap.PROT_READ)
        self._attach(buffer, width, height, bpp, stride, fd=fd, device=device)

    @classmethod
    def from_buffer(cls, buffer, width: int, height: int, bpp: int = 32,
                    stride: int | None = None) -> "FramebufferSurface":
        """Surface over an already mapped, writable pixel buffer."""
        surface = cls.__new__(cls)
        surface._attach(buffer, width, height, bpp, stride or width * bpp // 8)
        return surface

    def _attach(self, buffer, width: int, height: int, bpp: int, stride: int,
                fd: int | None = None, device: str | None = None) -> None:
        self.device = device
        self.width, self.height, self.bpp, self.stride = width, height, bpp, stride
        self._fd = fd
        self._mmap = buffer
        self.cell_w = self.cell_h = 1
        self.origin_x = self.origin_y = 0
        # Native-format colour blocks, rebuilt when the cell size changes
        self._blocks: list[np.ndarray] = []
        logger.info(f"Framebuffer: {self.width}x{self.height}, {self.bpp}bpp, stride={self.stride}")

    def set_grid(self, cols: int, rows: int) -> None:
        if (cols, rows) == (self.cols, self.rows) or cols <= 0 or rows <= 0:
            return
        if cols > self.width or rows > self.height:
            raise DecodeError(
                f"Grid {cols}x{rows} does not fit a {self.width}x{self.height} framebuffer"
            )
        self.cols, self.rows = cols, rows
        # Grid letterboxed in the middle of the screen
        self.cell_w = max(1, self.width // cols)
        self.cell_h = max(1, self.height // rows)
        self.origin_x = (self.width - self.cell_w * cols) // 2
        self.origin_y = (self.height - self.cell_h * rows) // 2
        block = np.empty((self.cell_h, self.cell_w, 3), dtype=np.uint8)
        self._blocks = []
        for rgb in PALETTE:
            block[:, :] = rgb
            self._blocks.append(rgb_to_fb_native(block, self.bpp))
        logger.info(f"Cell grid {cols}x{rows}, cell {self.cell_w}x{self.cell_h}px")

    def _write_region(self, fb_pixels: np.ndarray, x: int, y: int) -> None:
        """Write a native-format pixel array at physical position (x, y)."""
        h = fb_pixels.shape[0]
        bpp_bytes = self.bpp // 8
        for row in range(h):
            offset = (y + row) * self.stride + x * bpp_bytes
            self._mmap.seek(offset)
            self._mmap.write(fb_pixels[row].tobytes())

    def _cell_origin(self, x: int, y: int) -> tuple[int, int]:
        return self.origin_x + (x - 1) * self.cell_w, self.origin_y + (y - 1) * self.cell_h

    def set_pixel(self, x: int, y: int, color: int) -> None:
        if not (1 <= x <= self.cols and 1 <= y <= self.rows):
            return
        self._write_region(self._blocks[color], *self._cell_origin(x, y))

    def blit(self, x: int, y: int, text: str, fg: str, bg: str) -> None:
        n = min(len(text), self.cols - x + 1)
        if n <= 0 or not 1 <= y <= self.rows:
            return
        img = Image.new("RGB", (n * self.cell_w, self.cell_h))
        draw = ImageDraw.Draw(img)
        font = _get_font(self.cell_h)
        for i, ch in enumerate(text[:n]):
            left = i * self.cell_w
            back = PALETTE[color_index(bg[i] if i < len(bg) else "f")]
            draw.rectangle([left, 0, left + self.cell_w - 1, self.cell_h - 1], fill=back)
            if ch != " ":
                fore = PALETTE[color_index(fg[i] if i < len(fg) else "0", 0)]
                draw.text((left, 0), ch, fill=fore, font=font)
        self._write_region(rgb_to_fb_native(np.array(img), self.bpp), *self._cell_origin(x, y))

    def clear(self, color: int = BACKGROUND) -> None:
        frame = np.empty((self.height, self.width, 3), dtype=np.uint8)
        frame[:, :] = PALETTE[color]
        self._write_region(rgb_to_fb_native(frame, self.bpp), 0, 0)

    def close(self) -> None:
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
