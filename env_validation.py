"""Environment variable validation and management."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:7071/api"
DEFAULT_TIMEOUT = 60
DEFAULT_DAILY_REQUEST_LIMIT = 5


class ConfigurationError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate configuration, applying defaults for unset variables.

    Raises ConfigurationError if validation fails.
    """
    defaults = {
        "DB_PATH": "data.db",
        "KARTKOWKA_API_URL": DEFAULT_API_URL,
    }

    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars = {
        "KARTKOWKA_FUNCTION_KEY": "Function key sent to the study backend",
    }

    url = os.environ["KARTKOWKA_API_URL"]
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ConfigurationError(f"Invalid URL format for KARTKOWKA_API_URL: {url}")

    # Parse eagerly so bad values fail at startup rather than on first request.
    if get_env_int("KARTKOWKA_TIMEOUT", DEFAULT_TIMEOUT) <= 0:
        raise ConfigurationError("KARTKOWKA_TIMEOUT must be positive")
    if get_env_int("DAILY_REQUEST_LIMIT", DEFAULT_DAILY_REQUEST_LIMIT) <= 0:
        raise ConfigurationError("DAILY_REQUEST_LIMIT must be positive")

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_int(name: str, default: int) -> int:
    """Get integer value from environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'") from exc


def backend_settings() -> Dict[str, object]:
    return {
        "base_url": os.getenv("KARTKOWKA_API_URL") or DEFAULT_API_URL,
        "function_key": os.getenv("KARTKOWKA_FUNCTION_KEY") or None,
        "timeout": get_env_int("KARTKOWKA_TIMEOUT", DEFAULT_TIMEOUT),
    }
