"""
Pydantic Settings Configuration
=================================

Type-safe configuration management using Pydantic.
Validates all configuration values at startup and fails fast with clear error messages.
"""

import os
from typing import Optional
from pathlib import Path
from importlib import metadata
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

from toolgate.core.exceptions import ConfigurationError


DEFAULT_PERMISSION_SERVER_PORT = 3847


def _project_version() -> str:
    """Resolve the project version from package metadata."""
    try:
        return metadata.version("toolgate")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"


_CHANGEME_PREFIXES = ("changeme", "change-me", "your_", "your-", "placeholder")


def _is_placeholder(value: str) -> bool:
    """Return True if value looks like an unfilled template placeholder."""
    v = value.lower()
    return any(v.startswith(p) or p in v for p in _CHANGEME_PREFIXES)


_SECRET_MIN_LENGTH = 16


def _is_weak_secret(value: str) -> bool:
    """Return True if value is too short or low-entropy to be a real signing secret."""
    stripped = value.strip()
    if len(stripped) < _SECRET_MIN_LENGTH:
        return True
    if len(set(stripped)) < 4:
        return True
    return False


class CoordinatorConfig(BaseModel):
    """Approval coordinator (HTTP endpoint, waiter and reaper) configuration"""
    host: str = Field("127.0.0.1", description="Host the coordination endpoint binds to")
    port: int = Field(DEFAULT_PERMISSION_SERVER_PORT, ge=1, le=65535, description="Fixed coordination port")
    poll_interval_seconds: float = Field(1.0, ge=0.05, le=60, description="Status poll interval for cross-process waiters")
    approval_timeout_seconds: float = Field(300.0, ge=1, le=3600, description="How long a tool call waits for a human")
    reaper_interval_seconds: float = Field(60.0, gt=0, le=3600, description="How often stale approvals are swept")
    stale_after_seconds: float = Field(300.0, gt=0, le=86400, description="Age after which any approval record is swept")
    request_timeout_seconds: float = Field(5.0, gt=0, le=60, description="Per-request HTTP timeout for coordinator calls")

    @model_validator(mode='after')
    def validate_poll_within_timeout(self) -> "CoordinatorConfig":
        if self.poll_interval_seconds > self.approval_timeout_seconds:
            raise ValueError("poll_interval_seconds must not exceed approval_timeout_seconds")
        return self

    @property
    def base_url(self) -> str:
        # Wildcard binds are reached over loopback
        host = {"0.0.0.0": "127.0.0.1", "": "127.0.0.1", "::": "::1"}.get(self.host, self.host)
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"http://{host}:{self.port}"

    model_config = ConfigDict(extra='allow')


class SlackConfig(BaseModel):
    """Slack notification sink configuration"""
    bot_token: Optional[str] = Field(None, description="Slack bot token (xoxb-...)")
    signing_secret: Optional[str] = Field(None, description="Slack signing secret for interactivity requests")
    default_channel: str = Field("general", description="Fallback destination when no channel or user is known")

    @field_validator('bot_token')
    @classmethod
    def validate_bot_token(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if _is_placeholder(v):
            raise ValueError(
                "SLACK_BOT_TOKEN is still set to a placeholder value. "
                "Set the real bot token from your Slack app settings."
            )
        if not v.startswith("xoxb-"):
            raise ValueError("Slack bot token must start with 'xoxb-'")
        return v

    @field_validator('signing_secret')
    @classmethod
    def validate_signing_secret(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if _is_placeholder(v):
            raise ValueError(
                "SLACK_SIGNING_SECRET is still set to a placeholder value. "
                "Set the real signing secret from your Slack app settings."
            )
        if _is_weak_secret(v):
            raise ValueError(
                f"SLACK_SIGNING_SECRET is too weak (minimum {_SECRET_MIN_LENGTH} characters "
                "with reasonable entropy). Use the signing secret from your Slack app settings."
            )
        return v

    model_config = ConfigDict(extra='allow')


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field("text", description="Log format (json, text)")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ('json', 'text'):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = ConfigDict(extra='allow')


class Settings(BaseSettings):
    """
    Main application settings with type validation.

    Configuration is loaded from:
    1. YAML config file (if provided)
    2. Environment variables with TOOLGATE_ prefix (override)
    3. Default values (fallback)

    Environment variable mapping uses double-underscore nesting:
      TOOLGATE_COORDINATOR__PORT
      TOOLGATE_SLACK__BOT_TOKEN
      TOOLGATE_LOGGING__LEVEL
    """

    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    project_name: str = Field("Toolgate", description="Project name")
    version: str = Field(default_factory=_project_version, description="Project version")

    model_config = SettingsConfigDict(
        env_prefix='TOOLGATE_',
        env_nested_delimiter='__',
        extra='allow',
        validate_assignment=True,
    )

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Settings instance with validated configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables only."""
        return cls()

    def validate_required_config(self) -> list[str]:
        """
        Validate cross-section requirements.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        coordinator = self.coordinator
        if coordinator.stale_after_seconds < coordinator.approval_timeout_seconds:
            errors.append(
                "coordinator.stale_after_seconds must be at least approval_timeout_seconds, "
                "otherwise pending approvals are swept while a human may still answer"
            )
        return errors


def apply_legacy_env(settings: Settings, environ: Optional[dict[str, str]] = None) -> Settings:
    """
    Honour the worker's pre-TOOLGATE_ environment variables.

    PERMISSION_SERVER_PORT and SLACK_BOT_TOKEN are only used when the
    corresponding TOOLGATE_ variable is not set.
    """
    environ = os.environ if environ is None else environ

    port = environ.get("PERMISSION_SERVER_PORT")
    if port and "TOOLGATE_COORDINATOR__PORT" not in environ:
        settings.coordinator = CoordinatorConfig(**{**settings.coordinator.model_dump(), "port": int(port)})

    token = environ.get("SLACK_BOT_TOKEN")
    if token and "TOOLGATE_SLACK__BOT_TOKEN" not in environ:
        settings.slack = SlackConfig(**{**settings.slack.model_dump(), "bot_token": token})

    return settings


def load_settings(config_path: Optional[str | Path] = None) -> Settings:
    """
    Load and validate application settings.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If cross-section validation fails
        ValueError: If a field is invalid (pydantic ValidationError)
    """
    if config_path:
        settings = Settings.from_yaml(config_path)
    else:
        settings = Settings.from_env()

    errors = settings.validate_required_config()
    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return settings


__all__ = [
    'DEFAULT_PERMISSION_SERVER_PORT',
    'Settings',
    'CoordinatorConfig',
    'SlackConfig',
    'LoggingConfig',
    'apply_legacy_env',
    'load_settings',
]
