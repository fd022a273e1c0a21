# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tagmigrate Configuration System

Centralized configuration management supporting:
- Environment variables (TAGMIGRATE_*)
- Config files (~/.tagmigrate/config.yaml, .tagmigrate.yaml)
- Programmatic defaults
- Pydantic validation
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigError

logger = logging.getLogger("tagmigrate.config")


# ============================================================================
# Configuration Models
# ============================================================================


class PathsConfig(BaseModel):
    """Path configuration"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    home: Path = Field(
        default_factory=lambda: Path.home() / ".tagmigrate",
        description="Tagmigrate home directory",
    )
    database: Optional[Path] = Field(
        default=None,
        description="Engine database file (defaults to <home>/engine.db)",
    )
    log_dir: Path = Field(
        default_factory=lambda: Path.home() / ".tagmigrate" / "logs",
        description="Log files directory",
    )

    @field_validator("*", mode="before")
    @classmethod
    def ensure_path(cls, v):
        """Convert strings to Path objects"""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @property
    def database_path(self) -> Path:
        return self.database or self.home / "engine.db"


class DeploymentConfig(BaseModel):
    """Deployment pipeline configuration"""

    name: str = Field(
        default="tagmigrate", description="Deployment name used for duplicate filtering"
    )
    tenant_id: Optional[str] = Field(default=None, description="Deployment tenant")
    deploy_changed_only: bool = Field(
        default=True, description="Only redeploy resources whose content changed"
    )
    use_lock: bool = Field(
        default=True, description="Acquire the exclusive store lock while deploying"
    )


class MigrationConfig(BaseModel):
    """Auto-migration configuration"""

    auto_migrate_on_start: bool = Field(
        default=True, description="Run an auto-migration pass when the engine starts"
    )
    use_lock: bool = Field(
        default=True, description="Acquire the exclusive store lock for a pass"
    )
    migrations: Optional[str] = Field(
        default=None, description="Migrations to load, as 'module:attribute'"
    )

    @field_validator("migrations")
    @classmethod
    def validate_migrations(cls, v):
        if v is not None and ":" not in v:
            raise ValueError("migrations must look like 'package.module:attribute'")
        return v


class ObservabilityConfig(BaseModel):
    """Observability configuration"""

    log_level: str = Field(default="INFO", description="Logging level")
    file_logs: bool = Field(default=True, description="Write rotating log files")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper


class TagMigrateConfig(BaseModel):
    """Complete tagmigrate configuration"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    paths: PathsConfig = Field(
        default_factory=PathsConfig, description="Path configuration"
    )
    deployment: DeploymentConfig = Field(
        default_factory=DeploymentConfig, description="Deployment configuration"
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description="Auto-migration configuration"
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )


# ============================================================================
# Configuration Loader
# ============================================================================


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigLoader:
    """Load configuration from multiple sources"""

    @staticmethod
    def load_from_env() -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}

        # Paths
        home = os.getenv("TAGMIGRATE_HOME")
        if home:
            config.setdefault("paths", {})["home"] = home

        database = os.getenv("TAGMIGRATE_DB")
        if database:
            config.setdefault("paths", {})["database"] = database

        log_dir = os.getenv("TAGMIGRATE_LOG_DIR")
        if log_dir:
            config.setdefault("paths", {})["log_dir"] = log_dir

        # Deployment
        deployment_name = os.getenv("TAGMIGRATE_DEPLOYMENT_NAME")
        if deployment_name:
            config.setdefault("deployment", {})["name"] = deployment_name

        tenant_id = os.getenv("TAGMIGRATE_TENANT_ID")
        if tenant_id:
            config.setdefault("deployment", {})["tenant_id"] = tenant_id

        changed_only = os.getenv("TAGMIGRATE_DEPLOY_CHANGED_ONLY")
        if changed_only:
            config.setdefault("deployment", {})["deploy_changed_only"] = _env_flag(
                changed_only
            )

        use_lock = os.getenv("TAGMIGRATE_USE_LOCK")
        if use_lock:
            config.setdefault("deployment", {})["use_lock"] = _env_flag(use_lock)
            config.setdefault("migration", {})["use_lock"] = _env_flag(use_lock)

        # Migration
        auto_migrate = os.getenv("TAGMIGRATE_AUTO_MIGRATE")
        if auto_migrate:
            config.setdefault("migration", {})["auto_migrate_on_start"] = _env_flag(
                auto_migrate
            )

        migrations = os.getenv("TAGMIGRATE_MIGRATIONS")
        if migrations:
            config.setdefault("migration", {})["migrations"] = migrations

        # Observability
        log_level = os.getenv("TAGMIGRATE_LOG_LEVEL")
        if log_level:
            config.setdefault("observability", {})["log_level"] = log_level

        no_file_logs = os.getenv("TAGMIGRATE_NO_FILE_LOGS")
        if no_file_logs:
            config.setdefault("observability", {})["file_logs"] = not _env_flag(
                no_file_logs
            )

        return config

    @staticmethod
    def load_from_file(file_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file"""
        if not file_path.exists():
            return {}

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(
                f"Failed to load config file {file_path}",
                details={"path": str(file_path)},
                cause=e,
            ) from e

        if not isinstance(data, dict):
            raise ConfigError(
                f"Config file {file_path} must contain a mapping",
                details={"path": str(file_path)},
            )
        return data

    @staticmethod
    def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple configuration dictionaries"""
        result: Dict[str, Any] = {}
        for config in configs:
            for key, value in config.items():
                if (
                    key in result
                    and isinstance(result[key], dict)
                    and isinstance(value, dict)
                ):
                    result[key] = ConfigLoader.merge_configs(result[key], value)
                else:
                    result[key] = value
        return result


# ============================================================================
# Global Configuration Instance
# ============================================================================

_config: Optional[TagMigrateConfig] = None


def get_config() -> TagMigrateConfig:
    """
    Get global tagmigrate configuration

    Configuration is loaded from (in order of precedence):
    1. Environment variables (TAGMIGRATE_*)
    2. .tagmigrate.yaml in current directory
    3. ~/.tagmigrate/config.yaml
    4. Default values
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def load_config(
    config_file: Optional[Path] = None, env_override: bool = True
) -> TagMigrateConfig:
    """
    Load configuration from all sources

    Args:
        config_file: Optional specific config file to load
        env_override: Whether environment variables override file config

    Raises:
        ConfigError: If a file cannot be read or the merged config is invalid
    """
    configs = []

    default_locations = [
        Path.home() / ".tagmigrate" / "config.yaml",
        Path.cwd() / ".tagmigrate.yaml",
    ]

    for location in default_locations:
        file_config = ConfigLoader.load_from_file(location)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {location}")

    if config_file:
        if not config_file.exists():
            raise ConfigError(
                f"Config file {config_file} does not exist",
                details={"path": str(config_file)},
            )
        file_config = ConfigLoader.load_from_file(config_file)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_file}")

    if env_override:
        env_config = ConfigLoader.load_from_env()
        if env_config:
            configs.append(env_config)
            logger.debug("Loaded config from environment")

    merged = ConfigLoader.merge_configs(*configs) if configs else {}

    try:
        return TagMigrateConfig(**merged)
    except ValidationError as e:
        raise ConfigError("Config validation failed", cause=e) from e


def reload_config() -> TagMigrateConfig:
    """Reload global configuration"""
    global _config
    _config = load_config()
    logger.info("Configuration reloaded")
    return _config


def set_config(config: Optional[TagMigrateConfig]) -> None:
    """Replace the global configuration (None forces a reload on next access)"""
    global _config
    _config = config


def ensure_directories(config: Optional[TagMigrateConfig] = None):
    """Ensure all configured directories exist"""
    if config is None:
        config = get_config()

    directories = [
        config.paths.home,
        config.paths.database_path.parent,
    ]
    if config.observability.file_logs:
        directories.append(config.paths.log_dir)

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory: {directory}")
