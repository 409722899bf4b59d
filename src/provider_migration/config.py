"""Configuration management for Provider Migrator using Pydantic.

This module provides type-safe configuration models for the state store,
the resource registry, planning heuristics, execution defaults, and logging.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PathConfig(BaseModel):
    """Configuration for file paths."""

    report_dir: str = Field(default="reports", description="Directory for migration reports")


class StateConfig(BaseModel):
    """State store configuration (legacy records, plans, results, backups)."""

    db_path: str = Field(
        default="./provider_migration.db",
        description="SQLite file path or full SQLAlchemy database URL",
    )
    db_pool_size: int = Field(
        default=5, ge=1, le=50, description="Connections kept in the pool (PostgreSQL only)"
    )
    db_max_overflow: int = Field(
        default=10, ge=1, le=100, description="Connections allowed beyond pool_size"
    )
    db_pool_timeout: int = Field(
        default=30, ge=1, le=300, description="Seconds to wait for a pooled connection"
    )
    db_pool_recycle: int = Field(
        default=3600, ge=60, le=28800, description="Recycle connections after this many seconds"
    )

    @property
    def database_url(self) -> str:
        """Full SQLAlchemy URL for ``db_path``."""
        if self.db_path.startswith(("postgresql", "sqlite://", "mysql")):
            return self.db_path
        return f"sqlite:///{self.db_path}"


class RegistryConfig(BaseModel):
    """Configuration for the canonical resource registry."""

    mode: Literal["local", "http"] = Field(
        default="local",
        description="'local' stores providers in the state database, 'http' calls a registry API",
    )
    url: str | None = Field(default=None, description="Registry API base URL (http mode)")
    token: str | None = Field(default=None, description="Registry API token (http mode)")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: int = Field(default=30, ge=1, le=600, description="Request timeout in seconds")
    rate_limit: int = Field(default=20, ge=1, le=100, description="Requests per second limit")
    log_payloads: bool = Field(
        default=False, description="Log request/response payloads at DEBUG (secrets redacted)"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate and normalize URL."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_http_settings(self) -> "RegistryConfig":
        """HTTP mode needs an endpoint and a token."""
        if self.mode == "http":
            if not self.url:
                raise ValueError("registry.url is required when registry.mode is 'http'")
            if not self.token or not self.token.strip():
                raise ValueError("registry.token is required when registry.mode is 'http'")
        return self


class CatalogConfig(BaseModel):
    """Category catalog configuration."""

    file: str | None = Field(
        default=None,
        description="YAML catalog of category definitions (built-in catalog when unset)",
    )
    deprecated_markers: list[str] = Field(
        default_factory=lambda: ["deprecated_feature"],
        description="rawConfig keys that flag deprecated features",
    )


class PlanningConfig(BaseModel):
    """Heuristics used while building a migration plan."""

    performance_threshold: int = Field(
        default=100, ge=1, description="Record count above which a performance risk is raised"
    )
    base_duration_ms: int = Field(default=60000, ge=0, description="Fixed duration estimate")
    per_record_duration_ms: int = Field(
        default=2000, ge=0, description="Duration estimate per legacy record"
    )


class ExecutionConfig(BaseModel):
    """Default execution options."""

    batch_size: int = Field(default=10, ge=1, le=1000, description="Records per batch")
    max_concurrent: int = Field(
        default=5, ge=1, le=50, description="Records migrated concurrently within a batch"
    )
    create_backup: bool = Field(default=True, description="Snapshot pending records first")
    enable_rollback: bool = Field(
        default=True, description="Allow automatic and manual rollback"
    )
    validate_before_migration: bool = Field(
        default=True, description="Structurally validate target specs before migrating"
    )
    skip_existing: bool = Field(default=False, description="Reuse targets that already exist")
    force: bool = Field(
        default=False, description="Overwrite existing targets and bypass critical risks"
    )


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


class LoggingConfig(BaseModel):
    """Logging configuration. ``--log-level``/``--log-file`` on the CLI win over it."""

    level: str = Field(default="WARNING", description="Console log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default="logs/provider_migration.log", description="Log file path")

    @field_validator("level", "file_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def normalize_format(cls, v: str) -> str:
        if v.lower() not in LOG_FORMATS:
            raise ValueError(f"Log format must be one of: {', '.join(LOG_FORMATS)}")
        return v.lower()


class MigratorConfig(BaseSettings):
    """Main migrator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROVIDER_MIGRATOR_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    state: StateConfig = Field(default_factory=StateConfig, description="State configuration")
    registry: RegistryConfig = Field(
        default_factory=RegistryConfig, description="Resource registry configuration"
    )
    catalog: CatalogConfig = Field(
        default_factory=CatalogConfig, description="Category catalog configuration"
    )
    planning: PlanningConfig = Field(
        default_factory=PlanningConfig, description="Planning configuration"
    )
    execution: ExecutionConfig = Field(
        default_factory=ExecutionConfig, description="Execution defaults"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    paths: PathConfig = Field(default_factory=PathConfig, description="Path configuration")


def load_config_from_yaml(config_path: str | Path) -> MigratorConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigratorConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is empty or references a missing variable
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    return MigratorConfig(**config_data)


_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _expand_env_vars(data: Any) -> Any:
    """Recursively replace ``${VAR_NAME}`` references with environment values.

    References may be the whole value (``token: ${REGISTRY_TOKEN}``) or part
    of it (``db_path: postgresql://${DB_USER}@db/migrator``).

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if not isinstance(data, str):
        return data

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = os.environ.get(name)
        if value is None:
            raise ValueError(
                f"Environment variable '{name}' is referenced in the configuration but not set "
                "(export it or add it to .env)"
            )
        return value

    return _ENV_REFERENCE.sub(substitute, data)


def save_config_to_yaml(config: MigratorConfig, output_path: str | Path) -> None:
    """Save configuration to YAML file, leaving the registry token out.

    Args:
        config: Configuration to save
        output_path: Path to output YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump(mode="json")
    if config_dict.get("registry", {}).get("token"):
        config_dict["registry"]["token"] = "${PROVIDER_REGISTRY_TOKEN}"

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
