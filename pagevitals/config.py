"""Configuration management for page-vitals.

Supports multiple configuration sources with precedence:
CLI flags > Environment variables > Config file > Defaults

Usage:
    >>> config = Configuration()
    >>> config.load_from_file("~/.pagevitalsrc")
    >>> config.load_from_env()
    >>> config.merge(settle_ms=1000)  # CLI overrides
    >>> print(config.settle_ms)
    1000
"""

import os
import sys
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

if sys.platform == "darwin":
    DEFAULT_CHROME_BIN = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
else:
    DEFAULT_CHROME_BIN = "/usr/bin/google-chrome"

CONFIG_FILE = "~/.pagevitalsrc"


class Configuration:
    """Configuration manager with layered precedence.

    Precedence order (highest to lowest):
    1. CLI arguments (via merge method)
    2. Environment variables (CHROME_BIN, PAGEVITALS_* prefix)
    3. Config file (~/.pagevitalsrc JSON)
    4. Default values

    Attributes:
        chrome_bin: Chrome executable path
        chrome_port: Chrome remote debugging port (default: 9222)
        load_timeout: Seconds to wait for protocol events such as the load event
        settle_ms: Delay after the load event before the snapshot is taken
        cpu_throttle: CPU slowdown factor passed to Emulation.setCPUThrottlingRate
        ready_attempts: Number of /json/version polls before giving up
        ready_interval: Seconds between /json/version polls
        max_size: Maximum WebSocket message size in bytes
        log_level: Logging level (default: "INFO")
        log_format: Log output format "text" or "json" (default: "text")
    """

    DEFAULTS = {
        "chrome_bin": DEFAULT_CHROME_BIN,
        "chrome_port": 9222,
        "load_timeout": 30.0,
        "settle_ms": 2500,
        "cpu_throttle": 4.0,
        "ready_attempts": 40,
        "ready_interval": 0.25,
        "max_size": 64 * 1024 * 1024,  # precise coverage payloads get large
        "log_level": "INFO",
        "log_format": "text",
    }

    ENV_MAPPINGS = {
        "CHROME_BIN": ("chrome_bin", str),
        "PAGEVITALS_CHROME_BIN": ("chrome_bin", str),
        "PAGEVITALS_CHROME_PORT": ("chrome_port", int),
        "PAGEVITALS_LOAD_TIMEOUT": ("load_timeout", float),
        "PAGEVITALS_SETTLE_MS": ("settle_ms", int),
        "PAGEVITALS_CPU_THROTTLE": ("cpu_throttle", float),
        "PAGEVITALS_READY_ATTEMPTS": ("ready_attempts", int),
        "PAGEVITALS_READY_INTERVAL": ("ready_interval", float),
        "PAGEVITALS_MAX_SIZE": ("max_size", int),
        "PAGEVITALS_LOG_LEVEL": ("log_level", str),
        "PAGEVITALS_LOG_FORMAT": ("log_format", str),
    }

    def __init__(self):
        """Initialize configuration with default values."""
        self.chrome_bin: str = self.DEFAULTS["chrome_bin"]
        self.chrome_port: int = self.DEFAULTS["chrome_port"]
        self.load_timeout: float = self.DEFAULTS["load_timeout"]
        self.settle_ms: int = self.DEFAULTS["settle_ms"]
        self.cpu_throttle: float = self.DEFAULTS["cpu_throttle"]
        self.ready_attempts: int = self.DEFAULTS["ready_attempts"]
        self.ready_interval: float = self.DEFAULTS["ready_interval"]
        self.max_size: int = self.DEFAULTS["max_size"]
        self.log_level: str = self.DEFAULTS["log_level"]
        self.log_format: str = self.DEFAULTS["log_format"]

    def load_from_file(self, file_path: str) -> None:
        """Load configuration from JSON file.

        Args:
            file_path: Path to config file (typically ~/.pagevitalsrc)

        Note:
            Invalid JSON or missing file is ignored with a log message.
            Partial configs are merged with existing values.
        """
        path = Path(file_path).expanduser()

        if not path.exists():
            logger.debug(f"Config file not found: {path}")
            return

        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in config file {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Error loading config file {path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Config file {path} must contain a JSON object")
            return

        self._merge_dict(data)
        logger.info(f"Loaded configuration from {path}")

    def load_from_env(self) -> None:
        """Load configuration from environment variables.

        CHROME_BIN selects the browser binary; PAGEVITALS_CHROME_BIN wins
        when both are set. Invalid values are ignored with a warning log.
        """
        for env_var, (attr_name, type_converter) in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    converted_value = type_converter(value)
                    setattr(self, attr_name, converted_value)
                    logger.debug(f"Loaded {attr_name}={converted_value} from {env_var}")
                except (ValueError, TypeError) as e:
                    logger.warning(f"Invalid value for {env_var}: {value} ({e})")

    def merge(self, **kwargs) -> None:
        """Merge CLI arguments into configuration (highest precedence).

        Example:
            >>> config.merge(chrome_port=9333, settle_ms=1000)
        """
        self._merge_dict(kwargs)

    def _merge_dict(self, data: dict) -> None:
        for key, value in data.items():
            if key in self.DEFAULTS and value is not None:
                setattr(self, key, value)
                logger.debug(f"Set {key}={value}")

    @property
    def settle_seconds(self) -> float:
        return self.settle_ms / 1000.0

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {key: getattr(self, key) for key in self.DEFAULTS}

    def __repr__(self) -> str:
        return f"Configuration({self.to_dict()})"
