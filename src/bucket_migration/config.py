"""Configuration management for Bucket Bridge using Pydantic.

This module provides type-safe configuration models for connection profiles,
transfer tuning, retry behavior, local state, and logging.
"""

import os
import re
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_BUFFER_SIZE_MB = 128
STATE_DIR_ENV = "BUCKET_BRIDGE_STATE_DIR"


def default_state_dir() -> str:
    """Return the directory that holds checkpoint files.

    Honors ``BUCKET_BRIDGE_STATE_DIR``, then ``XDG_STATE_HOME``, then falls back
    to ``~/.local/state``.
    """
    override = os.environ.get(STATE_DIR_ENV)
    if override:
        return override
    base = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    return str(Path(base) / "bucket-bridge" / "migration")


class ErrorPolicy(str, Enum):
    """What a job does when one object exhausts its retries."""

    STOP_ON_FIRST_ERROR = "stop_on_first_error"
    BEST_EFFORT_CONTINUE = "best_effort_continue"


class ConnectionProfile(BaseModel):
    """A named endpoint plus the credentials used to reach it."""

    name: str = Field(..., description="Unique profile name")
    endpoint: str = Field(..., description="Endpoint string (S3 URL/host or Azure SAS URL)")
    region: str = Field(default="", description="S3 signing region (empty means us-east-1)")
    access_key: str = Field(default="", description="S3 access key (empty for anonymous)")
    secret_key: str = Field(default="", description="S3 secret key (empty for anonymous)")
    allow_insecure: bool = Field(
        default=False, description="Skip TLS certificate verification for this endpoint"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate profile name is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Profile name cannot be empty")
        return v.strip()

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate endpoint is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Endpoint cannot be empty")
        return v.strip()


class TransferConfig(BaseModel):
    """Transfer tuning for cross-provider copies."""

    max_concurrent_transfers: int = Field(
        default=2, ge=1, le=8, description="Objects copied concurrently"
    )
    buffer_size_mb: int = Field(
        default=256,
        ge=1,
        le=4096,
        description=f"Chunk size in MB (values below {MIN_BUFFER_SIZE_MB} are raised to it)",
    )
    bandwidth_limit_mbps: int | None = Field(
        default=None,
        ge=1,
        le=10000,
        description="Upload bandwidth cap in MB/s shared by all transfers (unset = unlimited)",
    )
    error_policy: ErrorPolicy = Field(
        default=ErrorPolicy.STOP_ON_FIRST_ERROR,
        description="Stop the job on the first failed object, or keep copying the rest",
    )
    request_timeout: float = Field(
        default=60.0, ge=1.0, le=3600.0, description="Per-request read timeout in seconds"
    )
    sample_interval: float = Field(
        default=1.0, gt=0, le=60.0, description="Seconds between progress samples"
    )
    max_samples: int = Field(
        default=300, ge=1, le=100000, description="Progress samples kept for charting"
    )

    @property
    def buffer_bytes(self) -> int:
        """Effective chunk size in bytes."""
        return max(self.buffer_size_mb, MIN_BUFFER_SIZE_MB) * 1024 * 1024

    @property
    def bandwidth_bytes_per_second(self) -> int | None:
        """Bandwidth cap in bytes per second, or None when unlimited."""
        if self.bandwidth_limit_mbps is None:
            return None
        return self.bandwidth_limit_mbps * 1024 * 1024


class RetryConfig(BaseModel):
    """Retry behavior for chunk uploads and multipart control calls."""

    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per operation")
    base_delay: float = Field(
        default=0.5, ge=0.0, le=60.0, description="Backoff after the first failure (seconds)"
    )
    jitter: float = Field(
        default=0.2, ge=0.0, le=10.0, description="Maximum random delay added (seconds)"
    )
    max_backoff_exponent: int = Field(
        default=4, ge=0, le=10, description="Exponent at which backoff stops growing"
    )
    retry_client_errors: bool = Field(
        default=True,
        description=(
            "Retry 4xx responses like transient failures. Disable to fail fast on "
            "bad credentials or missing buckets."
        ),
    )


class StateConfig(BaseModel):
    """Local state configuration."""

    state_dir: str = Field(
        default_factory=default_state_dir, description="Directory for checkpoint files"
    )

    @property
    def path(self) -> Path:
        """State directory with ``~`` expanded."""
        return Path(self.state_dir).expanduser()


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


class LoggingConfig(BaseModel):
    """Console and log file settings. ``--log-level`` and ``--log-file`` take precedence."""

    level: str = Field(default="WARNING", description="Console log level")
    file_level: str = Field(default="DEBUG", description="Log file level")
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default="logs/bucket-bridge.log", description="Log file path")
    disable_progress: bool = Field(
        default=False, description="Never show the live progress panel"
    )

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in LOG_FORMATS:
            raise ValueError(f"Log format must be one of: {', '.join(LOG_FORMATS)}")
        return v.lower()


class MigrationConfig(BaseSettings):
    """Main migration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BUCKET_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    profiles: list[ConnectionProfile] = Field(
        default_factory=list, description="Named endpoint and credential records"
    )
    transfer: TransferConfig = Field(
        default_factory=TransferConfig, description="Transfer configuration"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry configuration")
    state: StateConfig = Field(default_factory=StateConfig, description="State configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @model_validator(mode="after")
    def validate_unique_profiles(self) -> "MigrationConfig":
        """Profile names are lookup keys, so they must be unique."""
        seen: set[str] = set()
        for profile in self.profiles:
            if profile.name in seen:
                raise ValueError(f"Duplicate profile name: {profile.name}")
            seen.add(profile.name)
        return self

    def get_profile(self, name: str) -> ConnectionProfile | None:
        """Look up a profile by name."""
        return next((p for p in self.profiles if p.name == name), None)


ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from a YAML file, expanding ``${VAR}`` references.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is empty, not a mapping, or not valid YAML,
            or references an unset environment variable
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        config_data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")
    if not isinstance(config_data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {config_path}")

    return MigrationConfig(**_expand_env_vars(config_data))


def _expand_env_vars(data):
    """Substitute ``${VAR}`` references anywhere in string values.

    A reference may be the whole value (``${AWS_SECRET_ACCESS_KEY}``) or part
    of it, as in an Azure endpoint whose SAS query comes from the environment.

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if not isinstance(data, str):
        return data

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        value = os.environ.get(name)
        if value is None:
            raise ValueError(
                f"Environment variable '{name}' not found. Set it in the environment or a .env file."
            )
        return value

    return ENV_REFERENCE.sub(substitute, data)
