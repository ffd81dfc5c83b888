"""Exceptions shared across the playback pipeline."""


class ConfigError(Exception):
    """Bad or missing startup configuration (e.g. quadrant identity)."""


class DecodeError(Exception):
    """A segment or frame could not be decoded."""
