"""Logging configuration for the prompt engine.

Integrates with Prefect's logger factory and supports YAML-based configuration
with a built-in default.

Environment variables:
    PROMPT_ENGINE_LOGGING_CONFIG: Path to a custom logging.yml (dictConfig format)
    PROMPT_ENGINE_LOG_LEVEL: Level of the engine logger tree (INFO, DEBUG, ...)
    PREFECT_LOGGING_SETTINGS_PATH: Fallback config path shared with Prefect
"""

import logging.config
import os
from pathlib import Path
from typing import Any

import yaml
from prefect.logging import get_logger

# get_logger(name) hands out children of the "prefect" logger
ENGINE_LOGGER_NAME = "prefect.prompt_engine"

DEFAULT_LOG_LEVELS = {
    "prompt_engine": "INFO",
    "prompt_engine.slots": "INFO",
    "prompt_engine.compression": "INFO",
    "prompt_engine.compiler": "INFO",
}


class LoggingConfig:
    """Loads and applies the logging configuration.

    Configuration precedence:
        1. Explicit config_path parameter
        2. PROMPT_ENGINE_LOGGING_CONFIG environment variable
        3. PREFECT_LOGGING_SETTINGS_PATH environment variable
        4. Built-in default configuration

    The configuration is loaded lazily and cached on the instance.
    """

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config: dict[str, Any] | None = None

    @staticmethod
    def _get_default_config_path() -> Path | None:
        if env_path := os.environ.get("PROMPT_ENGINE_LOGGING_CONFIG"):
            return Path(env_path)

        if prefect_path := os.environ.get("PREFECT_LOGGING_SETTINGS_PATH"):
            return Path(prefect_path)

        return None

    def load_config(self) -> dict[str, Any]:
        """Return the dictConfig mapping, reading the YAML file on first access."""
        if self._config is None:
            if self.config_path and self.config_path.exists():
                with open(self.config_path, encoding="utf-8") as f:
                    self._config = yaml.safe_load(f)
            else:
                self._config = self._get_default_config()
        assert self._config is not None
        return self._config

    @staticmethod
    def _get_default_config() -> dict[str, Any]:
        """Console logging with the "HH:MM:SS.mmm | LEVEL | logger - message" format."""
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(name)s - %(message)s",
                    "datefmt": "%H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": {
                ENGINE_LOGGER_NAME: {
                    "level": os.environ.get("PROMPT_ENGINE_LOG_LEVEL", "INFO"),
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
            "root": {
                "level": "WARNING",
                "handlers": ["console"],
            },
        }

    def apply(self) -> None:
        """Apply the configuration via logging.config.dictConfig."""
        config = self.load_config()
        logging.config.dictConfig(config)

        if "prefect" in config.get("loggers", {}):
            prefect_level = config["loggers"]["prefect"].get("level", "INFO")
            os.environ.setdefault("PREFECT_LOGGING_LEVEL", prefect_level)


_logging_config: LoggingConfig | None = None


def setup_logging(config_path: Path | None = None, level: str | None = None) -> None:
    """Configure logging for the engine.

    Args:
        config_path: Optional YAML dictConfig file. Defaults to environment lookup.
        level: Optional level override applied to every engine logger.

    Calling it again reconfigures logging.
    """
    global _logging_config

    _logging_config = LoggingConfig(config_path)
    _logging_config.apply()

    if level:
        for logger_name in DEFAULT_LOG_LEVELS:
            get_logger(logger_name).setLevel(level)


def get_engine_logger(name: str):
    """Return a Prefect-integrated logger, initializing logging on first use.

    Use this instead of ``logging.getLogger`` in engine modules:

        >>> logger = get_engine_logger(__name__)
        >>> logger.info(f"Resolved {len(slots)} slots")
    """
    if _logging_config is None:
        setup_logging()

    return get_logger(name)
