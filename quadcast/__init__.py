"""Segmented video playback for one tile of a 2x2 display mosaic."""

__version__ = "0.3.0"
