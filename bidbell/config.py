"""
Client configuration module.

Manages the notification client configuration: REST and WebSocket
endpoints, snapshot size, reconnect policy and logging. Configuration can
be loaded from a YAML file or environment variables.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from platformdirs import user_config_dir, user_data_dir

from bidbell.reconnect import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, ReconnectPolicy


# ============================================================================
# Constants
# ============================================================================

APP_NAME = "bidbell"
APP_AUTHOR = "bidbell"
CONFIG_FILENAME = "config.yaml"

# Environment variable names
ENV_API_URL = "BIDBELL_API_URL"
ENV_WS_URL = "BIDBELL_WS_URL"
ENV_LOG_LEVEL = "BIDBELL_LOG_LEVEL"
ENV_CONFIG_PATH = "BIDBELL_CONFIG_PATH"

# Default values
DEFAULT_SNAPSHOT_LIMIT = 20
DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds
DEFAULT_LOG_LEVEL = "INFO"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_HOST_PATTERN = (
    r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,6}\.?|"  # domain
    r"localhost|"  # localhost
    r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
    r"(?::\d+)?"  # optional port
    r"(?:/?|[/?]\S+)$"
)
HTTP_URL_PATTERN = re.compile(r"^https?://" + _HOST_PATTERN, re.IGNORECASE)
WS_URL_PATTERN = re.compile(r"^wss?://" + _HOST_PATTERN, re.IGNORECASE)

# Keys settable through ``bidbell config set`` and their types
SETTABLE_KEYS = {
    "api_url": str,
    "ws_url": str,
    "snapshot_limit": int,
    "max_reconnect_attempts": int,
    "reconnect_base_delay_seconds": float,
    "request_timeout_seconds": float,
    "log_level": str,
}


# ============================================================================
# Exceptions
# ============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    pass


# ============================================================================
# Helper Functions
# ============================================================================


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory for the current platform.

    Returns:
        Path to the platform-appropriate config directory
    """
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def get_default_data_dir() -> Path:
    """
    Get the default data directory (credentials) for the current platform.

    Returns:
        Path to the platform-appropriate data directory
    """
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


# ============================================================================
# ClientConfig Class
# ============================================================================


class ClientConfig:
    """
    Notification client configuration.

    Configuration sources (in priority order):
    1. Environment variables (api_url, ws_url, log_level)
    2. Configuration file
    3. Default values

    Attributes:
        api_url: REST API base URL (e.g. https://auctions.example.com/api)
        ws_url: Push channel URL (e.g. wss://auctions.example.com)
        snapshot_limit: Notifications fetched per snapshot
        max_reconnect_attempts: Reconnect budget before giving up
        reconnect_base_delay_seconds: Linear backoff unit
        request_timeout_seconds: REST request timeout
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config_dir: Optional[Path] = None,
    ):
        """
        Initialize client configuration.

        Args:
            config_path: Explicit path to config file (takes precedence)
            config_dir: Directory containing config file
        """
        if config_path:
            self._config_path = Path(config_path)
            self._config_dir = self._config_path.parent
        elif config_dir:
            self._config_dir = Path(config_dir)
            self._config_path = self._config_dir / CONFIG_FILENAME
        else:
            env_path = os.environ.get(ENV_CONFIG_PATH)
            if env_path:
                self._config_path = Path(env_path)
                self._config_dir = self._config_path.parent
            else:
                self._config_dir = get_default_config_dir()
                self._config_path = self._config_dir / CONFIG_FILENAME

        self._api_url: str = ""
        self._ws_url: str = ""
        self._snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT
        self._max_reconnect_attempts: int = DEFAULT_MAX_ATTEMPTS
        self._reconnect_base_delay_seconds: float = DEFAULT_BASE_DELAY
        self._request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT
        self._log_level: str = DEFAULT_LOG_LEVEL

        self._load()

    @property
    def config_path(self) -> Path:
        """Get the configuration file path."""
        return self._config_path

    @property
    def config_dir(self) -> Path:
        """Get the configuration directory."""
        return self._config_dir

    # -------------------------------------------------------------------------
    # Configuration Properties
    # -------------------------------------------------------------------------

    @property
    def api_url(self) -> str:
        """Get the REST API base URL."""
        return os.environ.get(ENV_API_URL, self._api_url)

    @api_url.setter
    def api_url(self, value: str) -> None:
        self._api_url = value

    @property
    def ws_url(self) -> str:
        """Get the push channel URL."""
        return os.environ.get(ENV_WS_URL, self._ws_url)

    @ws_url.setter
    def ws_url(self, value: str) -> None:
        self._ws_url = value

    @property
    def snapshot_limit(self) -> int:
        return self._snapshot_limit

    @snapshot_limit.setter
    def snapshot_limit(self, value: int) -> None:
        self._snapshot_limit = value

    @property
    def max_reconnect_attempts(self) -> int:
        return self._max_reconnect_attempts

    @max_reconnect_attempts.setter
    def max_reconnect_attempts(self, value: int) -> None:
        self._max_reconnect_attempts = value

    @property
    def reconnect_base_delay_seconds(self) -> float:
        return self._reconnect_base_delay_seconds

    @reconnect_base_delay_seconds.setter
    def reconnect_base_delay_seconds(self, value: float) -> None:
        self._reconnect_base_delay_seconds = value

    @property
    def request_timeout_seconds(self) -> float:
        return self._request_timeout_seconds

    @request_timeout_seconds.setter
    def request_timeout_seconds(self, value: float) -> None:
        self._request_timeout_seconds = value

    @property
    def log_level(self) -> str:
        """Get the log level."""
        return os.environ.get(ENV_LOG_LEVEL, self._log_level)

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._log_level = value

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        """Check if both endpoints are configured."""
        return bool(self.api_url and self.ws_url)

    def reconnect_policy(self) -> ReconnectPolicy:
        """Build the reconnect policy from the configured values."""
        return ReconnectPolicy(
            base_delay=self.reconnect_base_delay_seconds,
            max_attempts=self.max_reconnect_attempts,
        )

    def as_dict(self) -> dict[str, Any]:
        """Effective configuration (environment overrides applied)."""
        return {key: getattr(self, key) for key in SETTABLE_KEYS}

    # -------------------------------------------------------------------------
    # Configuration Management
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        """Load configuration from file."""
        if not self._config_path.exists():
            return

        try:
            with open(self._config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {self._config_path}")

        self._api_url = data.get("api_url", "")
        self._ws_url = data.get("ws_url", "")
        self._snapshot_limit = data.get("snapshot_limit", DEFAULT_SNAPSHOT_LIMIT)
        self._max_reconnect_attempts = data.get(
            "max_reconnect_attempts", DEFAULT_MAX_ATTEMPTS
        )
        self._reconnect_base_delay_seconds = data.get(
            "reconnect_base_delay_seconds", DEFAULT_BASE_DELAY
        )
        self._request_timeout_seconds = data.get(
            "request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT
        )
        self._log_level = data.get("log_level", DEFAULT_LOG_LEVEL)

    def save(self) -> None:
        """Save configuration to file."""
        self._config_dir.mkdir(parents=True, exist_ok=True)

        data = {
            "api_url": self._api_url,
            "ws_url": self._ws_url,
            "snapshot_limit": self._snapshot_limit,
            "max_reconnect_attempts": self._max_reconnect_attempts,
            "reconnect_base_delay_seconds": self._reconnect_base_delay_seconds,
            "request_timeout_seconds": self._request_timeout_seconds,
            "log_level": self._log_level,
        }

        with open(self._config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def set_value(self, key: str, raw_value: str) -> None:
        """
        Set a configuration value from its string form (CLI input).

        Raises:
            ConfigValidationError: If the key is unknown or the value has the wrong type
        """
        value_type = SETTABLE_KEYS.get(key)
        if value_type is None:
            raise ConfigValidationError(
                f"Unknown configuration key: {key}. "
                f"Valid keys: {', '.join(sorted(SETTABLE_KEYS))}"
            )
        try:
            value = value_type(raw_value)
        except ValueError:
            raise ConfigValidationError(
                f"{key} must be of type {value_type.__name__}, got: {raw_value}"
            )
        if key == "log_level":
            value = value.upper()
        setattr(self, key, value)

    def validate(self) -> None:
        """
        Validate the current configuration.

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        if self.api_url and not HTTP_URL_PATTERN.match(self.api_url):
            raise ConfigValidationError(f"Invalid api_url format: {self.api_url}")

        if self.ws_url and not WS_URL_PATTERN.match(self.ws_url):
            raise ConfigValidationError(f"Invalid ws_url format: {self.ws_url}")

        for key, value_type in SETTABLE_KEYS.items():
            value = getattr(self, key)
            if value_type is int and (isinstance(value, bool) or not isinstance(value, int)):
                raise ConfigValidationError(f"{key} must be an integer, got: {value!r}")
            if value_type is float and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise ConfigValidationError(f"{key} must be a number, got: {value!r}")

        if self.snapshot_limit <= 0:
            raise ConfigValidationError(
                f"snapshot_limit must be positive, got: {self.snapshot_limit}"
            )

        if self.max_reconnect_attempts < 0:
            raise ConfigValidationError(
                f"max_reconnect_attempts must be non-negative, got: {self.max_reconnect_attempts}"
            )

        if self.reconnect_base_delay_seconds < 0:
            raise ConfigValidationError(
                f"reconnect_base_delay_seconds must be non-negative, got: {self.reconnect_base_delay_seconds}"
            )

        if self.request_timeout_seconds <= 0:
            raise ConfigValidationError(
                f"request_timeout_seconds must be positive, got: {self.request_timeout_seconds}"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(f"Invalid log_level: {self.log_level}")
