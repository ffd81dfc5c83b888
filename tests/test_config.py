"""Tests for environment configuration and quadrant resolution."""

from unittest.mock import patch

import pytest

from quadcast import config
from quadcast.errors import ConfigError


class TestResolveQuadrant:
    """Test label -> quadrant mapping."""

    def test_bare_number(self):
        assert config.resolve_quadrant("3") == 3

    def test_trailing_number(self):
        assert config.resolve_quadrant("mosaic-2") == 2

    def test_trailing_whitespace(self):
        assert config.resolve_quadrant("display_0 ") == 0

    def test_out_of_range(self):
        with pytest.raises(ConfigError):
            config.resolve_quadrant("display_4")

    def test_no_number(self):
        with pytest.raises(ConfigError):
            config.resolve_quadrant("raspberrypi")

    def test_empty(self):
        with pytest.raises(ConfigError):
            config.resolve_quadrant("")


class TestParseQuadrant:
    """Test explicit QUADRANT values."""

    def test_valid(self):
        assert config.parse_quadrant("0") == 0
        assert config.parse_quadrant("3") == 3

    def test_negative(self):
        with pytest.raises(ConfigError):
            config.parse_quadrant("-1")

    def test_not_an_integer(self):
        with pytest.raises(ConfigError):
            config.parse_quadrant("1.2")


class TestParseResolution:
    """Test WxH parsing."""

    def test_valid(self):
        assert config.parse_resolution("164x81") == (164, 81)

    def test_uppercase_separator(self):
        assert config.parse_resolution("10X5") == (10, 5)

    def test_garbage(self):
        with pytest.raises(ConfigError):
            config.parse_resolution("wide")

    def test_zero(self):
        with pytest.raises(ConfigError):
            config.parse_resolution("0x5")

    def test_shared_expected(self):
        assert config.parse_expected_resolution("8x4", 3) == (8, 4)

    def test_per_quadrant_expected(self):
        value = "8x4,9x4,10x4,11x4"
        assert config.parse_expected_resolution(value, 2) == (10, 4)

    def test_wrong_count(self):
        with pytest.raises(ConfigError):
            config.parse_expected_resolution("8x4,9x4", 0)

    def test_empty_means_none(self):
        assert config.parse_expected_resolution("", 0) is None


class TestParseTriggerPins:
    """Test name=pin parsing."""

    def test_default_has_four_lines(self):
        pins = config.parse_trigger_pins(config.DEFAULT_TRIGGER_PINS)
        assert len(pins) == 4

    def test_order_preserved(self):
        assert list(config.parse_trigger_pins("b=2, a=1")) == ["b", "a"]

    def test_empty(self):
        assert config.parse_trigger_pins("") == {}

    def test_missing_equals(self):
        with pytest.raises(ConfigError):
            config.parse_trigger_pins("top17")

    def test_bad_pin(self):
        with pytest.raises(ConfigError):
            config.parse_trigger_pins("top=GPIO17")


class TestLoadSettings:
    """Test building Settings from an environment mapping."""

    def test_defaults(self):
        settings = config.load_settings({"QUADRANT": "1"})
        assert settings.quadrant == 1
        assert settings.render_mode == "diff"
        assert settings.display == "framebuffer"
        assert settings.trigger_mode == "level"
        assert settings.expected_resolution is None
        assert settings.segment_ext == "txt"

    def test_label_used_when_no_quadrant(self):
        settings = config.load_settings({"DEVICE_LABEL": "tile_3"})
        assert settings.quadrant == 3

    def test_hostname_fallback(self):
        with patch.object(config.socket, "gethostname", return_value="quad-2"):
            assert config.load_settings({}).quadrant == 2

    def test_invalid_quadrant_is_fatal(self):
        with pytest.raises(ConfigError):
            config.load_settings({"QUADRANT": "7"})

    @pytest.mark.parametrize("value", ["-1", "1.2", "4", "q2"])
    def test_explicit_quadrant_must_be_plain_integer(self, value):
        with pytest.raises(ConfigError):
            config.load_settings({"QUADRANT": value})

    def test_explicit_quadrant_ignores_label(self):
        settings = config.load_settings({"QUADRANT": " 3 ", "DEVICE_LABEL": "tile_1"})
        assert settings.quadrant == 3

    def test_overrides(self):
        env = {
            "QUADRANT": "0",
            "SEGMENT_BASE_URL": "https://cdn.example.com/v/",
            "SEGMENT_EXT": ".nfv",
            "RENDER_MODE": "RAW",
            "DISPLAY_SURFACE": "memory",
            "EXPECTED_RESOLUTION": "164x81",
            "TRIGGER_MODE": "edge",
            "FETCH_TIMEOUT": "2.5",
            "LOG_LEVEL": "debug",
        }
        settings = config.load_settings(env)
        assert settings.base_url == "https://cdn.example.com/v/"
        assert settings.segment_ext == "nfv"
        assert settings.render_mode == "raw"
        assert settings.display == "memory"
        assert settings.expected_resolution == (164, 81)
        assert settings.trigger_mode == "edge"
        assert settings.fetch_timeout == 2.5
        assert settings.log_level == "DEBUG"

    def test_bad_render_mode(self):
        with pytest.raises(ConfigError):
            config.load_settings({"QUADRANT": "0", "RENDER_MODE": "vector"})

    def test_bad_timeout(self):
        with pytest.raises(ConfigError):
            config.load_settings({"QUADRANT": "0", "FETCH_TIMEOUT": "soon"})

    def test_bad_log_level(self):
        with pytest.raises(ConfigError):
            config.load_settings({"QUADRANT": "0", "LOG_LEVEL": "loud"})
