"""Tests for logging configuration."""

import logging
import os
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

from prompt_engine.logging import get_engine_logger, setup_logging
from prompt_engine.logging.logging_config import DEFAULT_LOG_LEVELS, ENGINE_LOGGER_NAME, LoggingConfig


class TestLoggingConfig:
    """Test LoggingConfig class."""

    def test_default_config_path_from_env(self):
        """Test getting config path from environment."""
        with patch.dict(os.environ, {"PROMPT_ENGINE_LOGGING_CONFIG": "/path/to/config.yml"}):
            assert LoggingConfig().config_path == Path("/path/to/config.yml")

    def test_default_config_path_from_prefect_env(self):
        """Test falling back to Prefect's logging settings path."""
        with patch.dict(os.environ, {"PREFECT_LOGGING_SETTINGS_PATH": "/prefect/config.yml"}, clear=True):
            assert LoggingConfig().config_path == Path("/prefect/config.yml")

    def test_no_config_path_returns_none(self):
        with patch.dict(os.environ, clear=True):
            assert LoggingConfig().config_path is None

    def test_load_config_from_file(self, tmp_path: Path) -> None:
        """Test loading config from YAML file."""
        config_file = tmp_path / "logging.yml"
        config_file.write_text("""
version: 1
disable_existing_loggers: false
loggers:
  prompt_engine:
    level: DEBUG
""")
        loaded = LoggingConfig(config_path=config_file).load_config()
        assert loaded["version"] == 1
        assert loaded["loggers"]["prompt_engine"]["level"] == "DEBUG"

    def test_missing_file_uses_default(self, tmp_path: Path) -> None:
        loaded = LoggingConfig(config_path=tmp_path / "absent.yml").load_config()
        assert loaded["version"] == 1
        assert ENGINE_LOGGER_NAME == "prefect.prompt_engine"
        assert ENGINE_LOGGER_NAME in loaded["loggers"]
        assert loaded["handlers"]["console"]["class"] == "logging.StreamHandler"

    def test_default_level_from_env(self):
        with patch.dict(os.environ, {"PROMPT_ENGINE_LOG_LEVEL": "DEBUG"}, clear=True):
            assert LoggingConfig().load_config()["loggers"][ENGINE_LOGGER_NAME]["level"] == "DEBUG"

    def test_config_is_cached(self, tmp_path: Path) -> None:
        config_file = tmp_path / "logging.yml"
        config_file.write_text("version: 1\n")
        config = LoggingConfig(config_path=config_file)
        first = config.load_config()
        config_file.write_text("version: 2\n")
        assert config.load_config() is first

    @patch("logging.config.dictConfig")
    def test_apply_with_prefect_settings(self, mock_dict_config: Mock) -> None:
        """Test that a prefect logger level is exported for Prefect."""
        with patch.dict(os.environ, clear=True):
            custom_config = {"version": 1, "loggers": {"prefect": {"level": "DEBUG"}}}
            with patch.object(LoggingConfig, "load_config", return_value=custom_config):
                LoggingConfig().apply()
            mock_dict_config.assert_called_once_with(custom_config)
            assert os.environ.get("PREFECT_LOGGING_LEVEL") == "DEBUG"


class TestSetupLogging:
    """Test setup_logging function."""

    @patch("prompt_engine.logging.logging_config.get_logger")
    @patch("prompt_engine.logging.logging_config.LoggingConfig.apply")
    def test_level_applied_to_engine_loggers(self, mock_apply: Mock, mock_get_logger: Mock) -> None:
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger

        setup_logging(level="DEBUG")

        mock_apply.assert_called_once()
        assert mock_get_logger.call_count == len(DEFAULT_LOG_LEVELS)
        mock_logger.setLevel.assert_called_with("DEBUG")

    @patch("prompt_engine.logging.logging_config.LoggingConfig")
    def test_custom_config_path(self, mock_config_class: Mock, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.yml"
        setup_logging(config_path=config_file)
        mock_config_class.assert_called_once_with(config_file)
        mock_config_class.return_value.apply.assert_called_once()


class TestGetEngineLogger:
    @patch("prompt_engine.logging.logging_config.setup_logging")
    @patch("prompt_engine.logging.logging_config.get_logger")
    def test_first_use_sets_up_logging(self, mock_get_logger: Mock, mock_setup: Mock) -> None:
        import prompt_engine.logging.logging_config

        prompt_engine.logging.logging_config._logging_config = None  # type: ignore[attr-defined]

        logger = get_engine_logger("prompt_engine.slots.resolver")

        mock_setup.assert_called_once()
        mock_get_logger.assert_called_with("prompt_engine.slots.resolver")
        assert logger == mock_get_logger.return_value

    @patch("prompt_engine.logging.logging_config.get_logger")
    def test_configured_logging_is_reused(self, mock_get_logger: Mock) -> None:
        import prompt_engine.logging.logging_config

        prompt_engine.logging.logging_config._logging_config = MagicMock()  # type: ignore[attr-defined]

        with patch("prompt_engine.logging.logging_config.setup_logging") as mock_setup:
            get_engine_logger("a")
            get_engine_logger("b")
            mock_setup.assert_not_called()

        assert mock_get_logger.call_count == 2


class TestEffectiveLevels:
    """Engine module loggers follow the configured level without mocks."""

    def test_env_level_reaches_module_loggers(self):
        with patch.dict(os.environ, {"PROMPT_ENGINE_LOG_LEVEL": "DEBUG"}, clear=True):
            setup_logging()
        logger = get_engine_logger("prompt_engine.slots.resolver")
        assert logger.name == "prefect.prompt_engine.slots.resolver"
        assert logger.getEffectiveLevel() == logging.DEBUG

    def test_level_override_reaches_module_loggers(self):
        with patch.dict(os.environ, clear=True):
            setup_logging(level="WARNING")
        try:
            logger = get_engine_logger("prompt_engine.compression.engine")
            assert logger.getEffectiveLevel() == logging.WARNING
            assert not logger.isEnabledFor(logging.INFO)
        finally:
            for name in DEFAULT_LOG_LEVELS:
                logging.getLogger(f"prefect.{name}").setLevel(logging.NOTSET)
