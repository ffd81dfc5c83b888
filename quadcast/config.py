"""Runtime settings, read once from the environment at startup.

Every knob has a default so a unit can boot with nothing but its quadrant
identity. The quadrant comes from ``QUADRANT`` when set, otherwise from the
trailing number of a device label (``DEVICE_LABEL``, falling back to the
host name), e.g. ``mosaic-2`` -> quadrant 2.
"""

import os
import re
import socket
from dataclasses import dataclass, field
from typing import Mapping

from quadcast import __version__
from quadcast.errors import ConfigError

QUADRANT_COUNT = 4

DEFAULT_BASE_URL = "https://example.invalid/segments/"
DEFAULT_SEGMENT_DIR = "/tmp/quadcast"
DEFAULT_TRIGGER_PINS = "top=17,bottom=27,left=22,right=23"

RENDER_MODES = ("diff", "raw")
DISPLAY_KINDS = ("framebuffer", "memory")
TRIGGER_MODES = ("level", "edge")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_LABEL_INDEX = re.compile(r"(\d+)\s*$")


@dataclass(frozen=True)
class Settings:
    quadrant: int
    base_url: str = DEFAULT_BASE_URL
    segment_ext: str = "txt"
    segment_dir: str = DEFAULT_SEGMENT_DIR
    fetch_timeout: float = 10.0
    user_agent: str = f"quadcast/{__version__}"
    expected_resolution: tuple[int, int] | None = None
    render_mode: str = "diff"
    display: str = "framebuffer"
    fb_device: str = "/dev/fb0"
    trigger_pins: dict[str, int] = field(default_factory=dict)
    trigger_mode: str = "level"
    log_level: str = "INFO"


def parse_quadrant(value: str) -> int:
    """Parse an explicit quadrant number (0-3)."""
    try:
        quadrant = int(value)
    except ValueError:
        raise ConfigError(f"QUADRANT must be an integer, got {value!r}") from None
    if not 0 <= quadrant < QUADRANT_COUNT:
        raise ConfigError(f"QUADRANT {quadrant} is outside 0-{QUADRANT_COUNT - 1}")
    return quadrant


def resolve_quadrant(label: str) -> int:
    """Map a device label to its quadrant index (0-3).

    The label may be a bare number or end in one ("display_3").
    """
    match = _LABEL_INDEX.search(label or "")
    if not match:
        raise ConfigError(f"Cannot derive quadrant from label {label!r}")
    quadrant = int(match.group(1))
    if not 0 <= quadrant < QUADRANT_COUNT:
        raise ConfigError(
            f"Quadrant {quadrant} from label {label!r} is outside 0-{QUADRANT_COUNT - 1}"
        )
    return quadrant


def parse_resolution(value: str) -> tuple[int, int]:
    """Parse ``"WxH"`` into a positive (width, height) pair."""
    try:
        width, height = (int(x) for x in value.strip().lower().split("x"))
    except ValueError:
        raise ConfigError(f"Invalid resolution {value!r}, expected WxH") from None
    if width <= 0 or height <= 0:
        raise ConfigError(f"Resolution must be positive, got {value!r}")
    return width, height


def parse_expected_resolution(value: str, quadrant: int) -> tuple[int, int] | None:
    """Expected resolution for this quadrant.

    Accepts one ``WxH`` shared by all tiles or four comma-separated values,
    one per quadrant. Empty means no validation.
    """
    value = value.strip()
    if not value:
        return None
    parts = [p for p in value.split(",") if p.strip()]
    if len(parts) == 1:
        return parse_resolution(parts[0])
    if len(parts) != QUADRANT_COUNT:
        raise ConfigError(
            f"EXPECTED_RESOLUTION needs 1 or {QUADRANT_COUNT} entries, got {len(parts)}"
        )
    return parse_resolution(parts[quadrant])


def parse_trigger_pins(value: str) -> dict[str, int]:
    """Parse ``"name=pin,name=pin"`` into an ordered mapping."""
    pins: dict[str, int] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, pin = item.partition("=")
        if not sep or not name.strip():
            raise ConfigError(f"Invalid trigger pin entry {item!r}, expected name=pin")
        try:
            pins[name.strip()] = int(pin)
        except ValueError:
            raise ConfigError(f"Invalid GPIO pin {pin!r} for trigger {name!r}") from None
    return pins


def _choice(environ: Mapping[str, str], name: str, default: str, allowed: tuple) -> str:
    value = environ.get(name, default).strip().lower()
    if value not in allowed:
        raise ConfigError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Raises ConfigError on any invalid value, before anything touches the
    display or the network.
    """
    env = os.environ if environ is None else environ

    raw_quadrant = env.get("QUADRANT", "").strip()
    if raw_quadrant:
        quadrant = parse_quadrant(raw_quadrant)
    else:
        quadrant = resolve_quadrant(env.get("DEVICE_LABEL") or socket.gethostname())

    try:
        fetch_timeout = float(env.get("FETCH_TIMEOUT", "10"))
    except ValueError:
        raise ConfigError(f"FETCH_TIMEOUT must be a number, got {env['FETCH_TIMEOUT']!r}") from None

    log_level = env.get("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return Settings(
        quadrant=quadrant,
        base_url=env.get("SEGMENT_BASE_URL", DEFAULT_BASE_URL),
        segment_ext=env.get("SEGMENT_EXT", "txt").lstrip("."),
        segment_dir=env.get("SEGMENT_DIR", DEFAULT_SEGMENT_DIR),
        fetch_timeout=fetch_timeout,
        user_agent=env.get("USER_AGENT", f"quadcast/{__version__}"),
        expected_resolution=parse_expected_resolution(
            env.get("EXPECTED_RESOLUTION", ""), quadrant
        ),
        render_mode=_choice(env, "RENDER_MODE", "diff", RENDER_MODES),
        display=_choice(env, "DISPLAY_SURFACE", "framebuffer", DISPLAY_KINDS),
        fb_device=env.get("FB_DEVICE", "/dev/fb0"),
        trigger_pins=parse_trigger_pins(env.get("TRIGGER_PINS", DEFAULT_TRIGGER_PINS)),
        trigger_mode=_choice(env, "TRIGGER_MODE", "level", TRIGGER_MODES),
        log_level=log_level,
    )
