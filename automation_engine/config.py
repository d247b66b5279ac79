"""Configuration for the workflow automation engine.

Settings are read from ``AUTOMATION_ENGINE_<FIELD>`` environment variables,
optionally pre-populated from a ``.env`` file by :func:`load_config`.
"""

import os
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .core.exceptions import ConfigurationError
from .models.core import Environment

ENV_PREFIX = "AUTOMATION_ENGINE_"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application
    app_name: str = Field(default="Workflow Automation Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Environment tag stamped on every execution context"
    )

    # HTTP server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Runs
    max_concurrent_executions: int = Field(
        default=10, ge=1,
        description="Worker threads available to runs started in the background"
    )
    webhook_timeout: float = Field(default=30.0, gt=0, description="Default webhook timeout in seconds")
    script_timeout: int = Field(default=30000, gt=0, description="Upper bound for script runs in milliseconds")
    retry_max_attempts: int = Field(
        default=3, ge=1,
        description="Attempts per node under 'retry' when the workflow declares no policy"
    )
    retry_base_delay: float = Field(default=1.0, ge=0, description="First retry delay in seconds")
    retry_max_delay: float = Field(default=60.0, ge=0, description="Cap on a single retry delay in seconds")

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Root logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context_suffix)s",
        description="Plain-text log line format"
    )
    log_file: Optional[str] = Field(default=None, description="Rotated log file path")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")
    log_max_size: int = Field(default=10 * 1024 * 1024, description="Log file size in bytes before rotation")
    log_backup_count: int = Field(default=5, description="Rotated log files to keep")

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION and not self.debug

    def get_logging_config(self) -> Dict[str, Any]:
        """Keyword arguments for ``setup_logging``."""
        return {
            "level": self.log_level.value,
            "log_file": self.log_file,
            "log_format": self.log_format,
            "structured": self.log_structured,
            "max_size": self.log_max_size,
            "backup_count": self.log_backup_count,
        }

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Keyword arguments for ``uvicorn.run``."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug,
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'AppConfig':
        """
        Build a configuration from prefixed environment variables.

        Each field ``name`` is read from ``AUTOMATION_ENGINE_NAME``; unset or
        empty variables keep the field default. Values are coerced by pydantic.

        Raises:
            ConfigurationError: If any value fails validation
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw:
                values[name] = raw

        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            key = f"{ENV_PREFIX}{str(first['loc'][0]).upper()}" if first.get("loc") else None
            raise ConfigurationError(f"Invalid configuration: {first['msg']}", config_key=key)


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, reading the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load a ``.env`` file (explicit path, else ``./.env``) and rebuild the configuration.

    Variables already set in the environment take precedence over the file.
    """
    global _config

    env_file = config_file or ".env"
    if os.path.exists(env_file):
        load_dotenv(env_file)

    _config = AppConfig.from_env()
    return _config


def reset_config():
    global _config
    _config = None


def get_testing_config() -> AppConfig:
    """Configuration for tests: no retry back-off, small worker pool, short timeouts."""
    return AppConfig(
        debug=True,
        log_level=LogLevel.WARNING,
        max_concurrent_executions=2,
        webhook_timeout=2.0,
        script_timeout=5000,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
    )
