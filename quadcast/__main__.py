"""Process entry point: configure, open hardware, watch the trigger."""

import asyncio
import logging
import signal
import sys

from quadcast.config import Settings, load_settings
from quadcast.controller import PlaybackController
from quadcast.display import DisplaySurface, FramebufferSurface, MemorySurface
from quadcast.errors import ConfigError
from quadcast.fetcher import SegmentFetcher
from quadcast.renderer import make_renderer
from quadcast.segment_store import SegmentStore
from quadcast.trigger import TriggerWatcher, open_gpio_lines

logger = logging.getLogger("quadcast")

surface: DisplaySurface | None = None
fetcher: SegmentFetcher | None = None


def build_controller(settings: Settings, display_surface: DisplaySurface) -> PlaybackController:
    """Wire the playback pipeline for one unit."""
    global fetcher
    store = SegmentStore(settings.segment_dir, settings.quadrant)
    store.ensure_dir()
    fetcher = SegmentFetcher(
        settings.base_url,
        settings.quadrant,
        store,
        ext=settings.segment_ext,
        timeout=settings.fetch_timeout,
        user_agent=settings.user_agent,
    )
    renderer = make_renderer(settings.render_mode, display_surface)
    return PlaybackController(
        fetcher, store, renderer, expected_resolution=settings.expected_resolution
    )


async def serve(settings: Settings) -> None:
    global surface
    if settings.display == "framebuffer":
        surface = FramebufferSurface(settings.fb_device)
        surface.clear()
    else:
        surface = MemorySurface()

    controller = build_controller(settings, surface)
    watcher = TriggerWatcher(
        open_gpio_lines(settings.trigger_pins), controller.run, mode=settings.trigger_mode
    )
    await watcher.watch()


def cleanup(signum: int | None = None, frame=None) -> None:
    """Clean up on exit."""
    if fetcher is not None:
        fetcher.close()
    if surface is not None:
        surface.close()
    sys.exit(0)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        raise SystemExit(1)
    logging.getLogger().setLevel(settings.log_level)

    logger.info(f"Starting quadcast unit for quadrant {settings.quadrant}")
    logger.info(f"  Segments: {settings.base_url}<n>_q{settings.quadrant}.{settings.segment_ext}")
    logger.info(f"  Render mode: {settings.render_mode}, display: {settings.display}")
    logger.info(f"  Trigger lines: {', '.join(settings.trigger_pins) or 'none'}")

    signal.signal(signal.SIGTERM, cleanup)
    signal.signal(signal.SIGINT, cleanup)

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        cleanup(None, None)


if __name__ == "__main__":
    main()
