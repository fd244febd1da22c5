# tests/test_config.py - Tests for configuration and helpers
"""
Unit tests for Config, EngineConfig and threshold parsing.
"""

import pytest
from pgslower.errors import ConfigurationError, InvalidThreshold
from pgslower.utils.config import Config, EngineConfig
from pgslower.utils.helpers import format_ms, parse_kernel_version, parse_threshold_ms


class TestConfig:
    """Test cases for Config"""

    def test_defaults(self):
        """Test defaults are available without a file"""
        cfg = Config()

        assert cfg.get('engine.threshold_ms') == 100
        assert cfg.get('engine.max_active') == 1024
        assert cfg.get('output.format') == 'stdout'
        assert cfg.get('missing.key', 'fallback') == 'fallback'

    def test_defaults_not_shared(self):
        """Test changing one config leaves the defaults alone"""
        Config().set('engine.max_active', 1)

        assert Config().get('engine.max_active') == 1024

    def test_load_merges_with_defaults(self, tmp_path):
        """Test a partial file overrides only what it names"""
        path = tmp_path / "pgslower.yaml"
        path.write_text("engine:\n  threshold_ms: 250\nfeed:\n  pid: 4242\n")

        cfg = Config(str(path))

        assert cfg.get('engine.threshold_ms') == 250
        assert cfg.get('engine.max_active') == 1024
        assert cfg.get('feed.pid') == 4242

    def test_invalid_yaml(self, tmp_path):
        """Test broken YAML raises a configuration error"""
        path = tmp_path / "broken.yaml"
        path.write_text("engine: [unclosed\n")

        with pytest.raises(ConfigurationError):
            Config(str(path))

    def test_save_round_trip(self, tmp_path):
        """Test saved configuration loads back"""
        cfg = Config()
        cfg.set('engine.workers', 4)
        path = tmp_path / "saved.yaml"
        cfg.save_to_file(str(path))

        assert Config(str(path)).get('engine.workers') == 4


class TestEngineConfig:
    """Test cases for EngineConfig"""

    def test_from_config(self):
        """Test threshold is converted to nanoseconds"""
        cfg = Config()
        cfg.set('engine.threshold_ms', '2.5')
        cfg.set('engine.workers', 3)

        engine = EngineConfig.from_config(cfg)

        assert engine.threshold_ns == 2_500_000
        assert engine.threshold_ms == 2.5
        assert engine.workers == 3

    @pytest.mark.parametrize("value", ["abc", "-1", -0.5, None, "nan", True])
    def test_invalid_threshold(self, value):
        """Test non-numeric and negative thresholds are rejected"""
        cfg = Config()
        cfg.set('engine.threshold_ms', value)

        with pytest.raises(InvalidThreshold):
            EngineConfig.from_config(cfg)

    @pytest.mark.parametrize("value", [0, -3, "many", 1.5, None])
    def test_invalid_max_active(self, value):
        """Test the buffer limit must be a positive integer"""
        cfg = Config()
        cfg.set('engine.max_active', value)

        with pytest.raises(ConfigurationError, match="engine.max_active"):
            EngineConfig.from_config(cfg)


class TestHelpers:
    """Test cases for helper functions"""

    def test_zero_threshold_allowed(self):
        """Test zero is a valid threshold"""
        assert parse_threshold_ms("0") == 0

    def test_threshold_conversion(self):
        """Test milliseconds to nanoseconds"""
        assert parse_threshold_ms(100) == 100_000_000
        assert parse_threshold_ms(" 0.001 ") == 1000

    def test_format_ms(self):
        """Test ms.us formatting"""
        assert format_ms(1_234_567) == "1.235"
        assert format_ms(0) == "0.000"

    def test_parse_kernel_version(self):
        """Test kernel release parsing"""
        assert parse_kernel_version("6.1.0-13-amd64\n") == (6, 1, 0)
        assert parse_kernel_version("5.15") == (5, 15, 0)
        assert parse_kernel_version("4.19.0+") == (4, 19, 0)
