"""Tests for application configuration."""

import logging
import os

import pytest

from automation_engine.config import (
    AppConfig,
    LogLevel,
    get_config,
    get_testing_config,
    load_config,
    reset_config,
)
from automation_engine.core.exceptions import ConfigurationError
from automation_engine.core.logging import (
    StructuredFormatter,
    clear_logging_context,
    set_logging_context,
    setup_logging,
)
from automation_engine.models.core import Environment


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


class TestAppConfig:
    """Test configuration loading from the environment."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("AUTOMATION_ENGINE_PORT", raising=False)

        config = get_config()

        assert config.port == 8000
        assert config.environment == Environment.DEVELOPMENT
        assert get_config() is config

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("AUTOMATION_ENGINE_PORT", "9100")
        monkeypatch.setenv("AUTOMATION_ENGINE_DEBUG", "yes")
        monkeypatch.setenv("AUTOMATION_ENGINE_ENVIRONMENT", "production")
        monkeypatch.setenv("AUTOMATION_ENGINE_LOG_LEVEL", "debug")

        config = AppConfig.from_env()

        assert config.port == 9100
        assert config.debug is True
        assert config.log_level == LogLevel.DEBUG
        assert config.is_production is False

    def test_invalid_values_raise_configuration_error(self, monkeypatch):
        monkeypatch.setenv("AUTOMATION_ENGINE_PORT", "99999")

        with pytest.raises(ConfigurationError):
            AppConfig.from_env()

    def test_load_config_reads_dotenv(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AUTOMATION_ENGINE_APP_NAME", raising=False)
        env_file = tmp_path / "test.env"
        env_file.write_text("AUTOMATION_ENGINE_APP_NAME=From dotenv\n")

        try:
            config = load_config(str(env_file))
            assert config.app_name == "From dotenv"
        finally:
            os.environ.pop("AUTOMATION_ENGINE_APP_NAME", None)

    def test_testing_config(self):
        config = get_testing_config()

        assert config.retry_base_delay == 0.0
        assert config.max_concurrent_executions == 2
        assert config.get_logging_config()["level"] == "WARNING"
        assert config.get_uvicorn_config()["port"] == 8000


class TestLogging:
    """Test logging setup and structured output."""

    def test_structured_formatter_includes_context(self):
        set_logging_context(run_id="run-1")
        try:
            root = setup_logging(level="INFO", structured=True)
            handler = root.handlers[0]
            record = logging.LogRecord("automation_engine.core", logging.INFO, __file__, 1, "hello", None, None)
            handler.filter(record)
            output = handler.format(record)
        finally:
            clear_logging_context()

        assert isinstance(handler.formatter, StructuredFormatter)
        assert '"run_id": "run-1"' in output
        assert '"message": "hello"' in output
