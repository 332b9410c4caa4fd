"""Configuration management for Directus Bridge using Pydantic.

This module provides type-safe configuration models for the extract and
apply pipelines, including the Directus instances, template paths,
performance tuning, logging and the capability flags that select which
entity families are transferred.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Keys that must never reach the logs when flags are echoed back
SENSITIVE_FLAGS = {"userEmail", "userPassword", "directusToken", "token", "password"}

# camelCase keys accepted from request bodies
_FLAG_ALIASES = {"excludeExtensionCollections": "exclude_extension_collections"}


class InstanceConfig(BaseModel):
    """Configuration for a Directus instance (source or target)."""

    url: str = Field(..., description="Directus instance URL")
    token: str = Field(..., description="Static access token")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: int = Field(default=30, ge=1, le=1200, description="API request timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate token is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Token cannot be empty")
        return v


class PathConfig(BaseModel):
    """Configuration for file paths."""

    template_dir: str = Field(default="template", description="Root directory of the template")


class PerformanceConfig(BaseModel):
    """Performance tuning configuration."""

    batch_size: int = Field(
        default=50, ge=1, le=500, description="Records per create/update batch for content"
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Page size used when paginating existing records on the target",
    )
    max_concurrent: int = Field(
        default=10, ge=1, le=50, description="Maximum concurrent API requests per fan-out"
    )
    rate_limit: int = Field(
        default=20, ge=0, le=200, description="Requests per second limit (0 disables)"
    )
    http_max_connections: int = Field(
        default=50,
        ge=10,
        le=200,
        description="Maximum number of connections in the connection pool",
    )
    http_max_keepalive_connections: int = Field(
        default=20,
        ge=5,
        le=100,
        description="Maximum number of keepalive connections",
    )
    readiness_poll_interval: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Seconds between readiness checks against the target instance",
    )
    readiness_max_attempts: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Readiness checks before giving up",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="WARNING",
        description="Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    file_level: str = Field(
        default="DEBUG",
        description="File log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    format: str = Field(default="json", description="Log format (json or console)")
    file: str | None = Field(default="logs/directus-bridge.log", description="Log file path")
    log_payloads: bool = Field(
        default=False,
        description=(
            "Enable request/response payload logging at DEBUG level. "
            "WARNING: May log sensitive data (tokens will be redacted)."
        ),
    )
    max_payload_size: int = Field(
        default=10000,
        ge=100,
        le=1000000,
        description="Maximum payload size (characters) to log. Larger payloads will be truncated.",
    )

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class CapabilityFlags(BaseModel):
    """Switches selecting which entity families are extracted or applied."""

    schema_: bool = Field(default=True, alias="schema")
    files: bool = Field(default=True)
    permissions: bool = Field(default=True)
    users: bool = Field(default=True)
    settings: bool = Field(default=True)
    flows: bool = Field(default=True)
    dashboards: bool = Field(default=True)
    extensions: bool = Field(default=True)
    content: bool = Field(default=True)
    exclude_extension_collections: bool = Field(
        default=True,
        description="Skip collections grouped under _extensions (owned by installed extensions)",
    )

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_request(cls, body: dict[str, Any]) -> "CapabilityFlags":
        """Build flags from a loosely-typed request body.

        Every flag is true unless the body explicitly sets it to ``False``.
        camelCase keys are accepted alongside snake_case ones.
        """
        values: dict[str, bool] = {}
        for key, value in body.items():
            name = _FLAG_ALIASES.get(key, key)
            if name == "schema_":
                name = "schema"
            if name in cls.flag_names():
                values[name] = value is not False
        return cls(**values)

    @classmethod
    def flag_names(cls) -> list[str]:
        """Return flag names as they appear in config files and requests."""
        return [field.alias or name for name, field in cls.model_fields.items()]

    def as_dict(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class AdvancedConfig(BaseModel):
    """Advanced pipeline options."""

    fail_fast: bool = Field(
        default=True,
        description=(
            "Abort the run on the first failed operation. When disabled, per-operation "
            "failures are recorded and reported at the end of the run."
        ),
    )


class MigrationConfig(BaseSettings):
    """Main Directus Bridge configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Directus instances (extract needs source, apply needs target)
    source: InstanceConfig | None = Field(default=None, description="Source Directus instance")
    target: InstanceConfig | None = Field(default=None, description="Target Directus instance")

    paths: PathConfig = Field(default_factory=PathConfig, description="Path configuration")

    performance: PerformanceConfig = Field(
        default_factory=PerformanceConfig, description="Performance configuration"
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    flags: CapabilityFlags = Field(
        default_factory=CapabilityFlags, description="Capability flags"
    )

    advanced: AdvancedConfig = Field(
        default_factory=AdvancedConfig, description="Advanced configuration"
    )


def sanitize_flags(flags: dict[str, Any]) -> dict[str, Any]:
    """Drop credential-bearing keys from a flag mapping before logging it."""
    return {key: value for key, value in flags.items() if key not in SENSITIVE_FLAGS}


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    # Expand environment variables in the config
    config_data = _expand_env_vars(config_data)

    return MigrationConfig(**config_data)


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in config dict.

    Supports ${VAR_NAME} syntax for environment variable substitution.

    Args:
        data: Configuration value (dict, list or scalar)

    Returns:
        The value with environment variables expanded
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data
