"""Trigger polling: start playback when any input line goes active."""

import asyncio
import logging
from typing import Awaitable, Callable, Mapping, Protocol

from gpiozero import DigitalInputDevice

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


class TriggerLine(Protocol):
    is_active: bool


def open_gpio_lines(pins: Mapping[str, int]) -> dict[str, DigitalInputDevice]:
    """Open one GPIO input per named trigger line."""
    lines = {}
    for name, pin in pins.items():
        lines[name] = DigitalInputDevice(pin)
        logger.info(f"Trigger line {name!r} on GPIO{pin}")
    return lines


class TriggerWatcher:
    """Polls the trigger lines and runs playback on activation.

    ``level`` mode fires whenever a line is active and no run is in
    progress, so a held trigger replays the stream. ``edge`` mode fires only
    on an inactive -> active transition of the combined lines.
    """

    def __init__(
        self,
        lines: Mapping[str, TriggerLine],
        run: Callable[[], Awaitable],
        mode: str = "level",
        poll_interval: float = POLL_INTERVAL,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        if mode not in ("level", "edge"):
            raise ValueError(f"Unknown trigger mode {mode!r}")
        self.lines = dict(lines)
        self.run = run
        self.mode = mode
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.playing = False
        self.runs = 0
        self._was_active = False

    def active_lines(self) -> list[str]:
        return [name for name, line in self.lines.items() if line.is_active]

    async def poll_once(self) -> bool:
        """Check the lines once; run playback if triggered. Returns True if it ran."""
        active = self.active_lines()
        rising = bool(active) and not self._was_active
        self._was_active = bool(active)

        if not active or self.playing:
            return False
        if self.mode == "edge" and not rising:
            return False

        logger.info(f"Trigger active on {', '.join(active)}")
        self.playing = True
        self.runs += 1
        try:
            outcome = await self.run()
            logger.info(f"Playback finished: {getattr(outcome, 'value', outcome)}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Playback run failed: {e}")
        finally:
            self.playing = False
        return True

    async def watch(self) -> None:
        """Poll forever."""
        logger.info(f"Watching {len(self.lines)} trigger lines ({self.mode} mode)")
        while True:
            await self.poll_once()
            await self.sleep(self.poll_interval)
