# pgslower/utils/config.py - Configuration management
"""
Configuration management for the tracer.
Loads configuration from YAML files and validates the engine settings.
"""

import copy
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pgslower.errors import ConfigurationError
from pgslower.utils.helpers import parse_threshold_ms


class Config:
    """
    Configuration manager for the tracer.

    Loads configuration from YAML files and provides access to settings.
    """

    DEFAULT_CONFIG = {
        'engine': {
            'threshold_ms': 100,
            'max_active': 1024,
            'workers': 1,
            'queue_size': 10000,
        },
        'feed': {
            'pid': None,
            'binary': None,
            'buffer_pages': 64,
            'poll_timeout_ms': 100,
        },
        'output': {
            'format': 'stdout',
            'json_file': None,
            'colors': True,
            'prometheus_port': None,
        },
    }

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML configuration file
        """
        self.logger = logging.getLogger(__name__)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str):
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.warning(f"Config file not found: {config_file}, using defaults")
            return

        try:
            with open(config_path, 'r') as f:
                loaded_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self.logger.error(f"Failed to load config: {e}")
            raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e

        if not isinstance(loaded_config, dict):
            raise ConfigurationError(f"{config_file} must contain a mapping")

        # Merge with defaults
        self._merge_config(self.config, loaded_config)
        self.logger.info(f"Loaded configuration from {config_file}")

    def _merge_config(self, base: Dict, override: Dict):
        """
        Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'engine.threshold_ms')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'engine.max_active')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def to_dict(self) -> Dict:
        """
        Get full configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return copy.deepcopy(self.config)

    def save_to_file(self, config_file: str):
        """
        Save current configuration to YAML file.

        Args:
            config_file: Path to output YAML file
        """
        config_path = Path(config_file)

        with open(config_path, 'w') as f:
            yaml.dump(self.config, f, default_flow_style=False)

        self.logger.info(f"Saved configuration to {config_file}")


@dataclass
class EngineConfig:
    """
    Validated settings the engine is built from.
    """
    threshold_ns: int
    max_active: int = 1024
    workers: int = 1
    queue_size: int = 10000

    @classmethod
    def from_config(cls, config: Config) -> "EngineConfig":
        """
        Build and validate engine settings.

        Args:
            config: Loaded configuration

        Returns:
            EngineConfig

        Raises:
            InvalidThreshold: threshold is non-numeric or negative
            ConfigurationError: a limit is not a positive integer
        """
        engine = cls(
            threshold_ns=parse_threshold_ms(config.get('engine.threshold_ms')),
            max_active=_positive_int(config.get('engine.max_active'), 'engine.max_active'),
            workers=_positive_int(config.get('engine.workers'), 'engine.workers'),
            queue_size=_positive_int(config.get('engine.queue_size'), 'engine.queue_size'),
        )
        return engine

    @property
    def threshold_ms(self) -> float:
        return self.threshold_ns / 1_000_000.0


def _positive_int(value: Any, name: str) -> int:
    message = f"{name} must be a positive integer, got {value!r}"
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ConfigurationError(message)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(message) from None
    if number < 1:
        raise ConfigurationError(message)
    return number
