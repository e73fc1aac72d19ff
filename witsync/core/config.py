"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Configuration management for witsync.

This module provides a central location for all configuration settings. It
handles environment variables, JSON configuration files, default values, and
validation of the run-wide migration policies.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator, model_validator

from witsync.core.logging import get_logger
from witsync.store import FieldCondition

logger = get_logger("witsync.config")


class MigrationKind(str, Enum):
    """Kinds of migration a run can execute, in their usual order."""

    NODES = "nodes"
    WORK_ITEMS = "work_items"
    TEST_CONFIGURATIONS = "test_configurations"
    TEST_PLANS = "test_plans"
    QUERIES = "queries"


class BaseConfig(BaseModel):
    """Base configuration class with common functionality."""

    ENV_PREFIX: ClassVar[str] = "WITSYNC_"

    @classmethod
    def from_env(cls, **overrides) -> "BaseConfig":
        """
        Create a configuration instance from environment variables.

        Args:
        ----
            **overrides: Key-value pairs that override environment variables

        """
        raise NotImplementedError("Subclasses must implement from_env method")

    @classmethod
    def get_env_var(cls, key: str, default: Any = None) -> Any:
        """
        Get an environment variable with the class prefix.

        Args:
        ----
            key: Key name without prefix
            default: Default value if environment variable is not found

        Returns:
        -------
            The environment variable value or default

        """
        env_key = f"{cls.ENV_PREFIX}{key.upper()}"
        return os.environ.get(env_key, default)

    @classmethod
    def get_env_flag(cls, key: str, default: bool = False) -> bool:
        """Read a true/false environment variable."""
        return str(cls.get_env_var(key, str(default))).lower() == "true"


class LoggingConfig(BaseConfig):
    """Configuration for logging settings."""

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    use_rich: bool = Field(
        default=True,
        description="Whether to use rich for console logging",
    )
    log_file: str | None = Field(
        default=None,
        description="Path to the log file (None for console-only logging)",
    )
    json_format: bool = Field(
        default=False,
        description="Whether to use JSON format for logs",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, value):
        """Validate that the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        value = value.upper()
        if value not in valid_levels:
            logger.warning(f"Invalid log level '{value}', defaulting to INFO")
            return "INFO"
        return value

    @classmethod
    def from_env(cls, **overrides) -> "LoggingConfig":
        """Create a logging configuration from environment variables."""
        config = {
            "level": cls.get_env_var("LOG_LEVEL", "INFO"),
            "use_rich": cls.get_env_flag("LOG_USE_RICH", True),
            "log_file": cls.get_env_var("LOG_FILE", None),
            "json_format": cls.get_env_flag("LOG_JSON", False),
        }
        config.update(overrides)
        return cls(**config)

    def get_log_level_int(self) -> int:
        """Get the numeric logging level."""
        return getattr(logging, self.level)

    def configure_logging(self, debug: bool = False) -> None:
        """
        Configure logging based on the settings.

        Args:
        ----
            debug: Whether to force debug mode

        """
        from witsync.core.logging import configure_logging as configure_contextual_logging

        configure_contextual_logging(
            level=logging.DEBUG if debug else self.get_log_level_int(),
            log_file=self.log_file,
            json_format=self.json_format,
            include_timestamp=True,
            use_rich=self.use_rich,
            debug=debug,
        )


class EndpointConfig(BaseConfig):
    """Configuration for one side (source or target) of a migration."""

    project: str = Field(
        ...,
        description="Team project name",
        min_length=1,
    )
    snapshot: str | None = Field(
        default=None,
        description="Path to the JSON snapshot of the collection hosting the project",
    )

    @classmethod
    def from_env(cls, side: str = "SOURCE", **overrides) -> "EndpointConfig":
        """Create an endpoint configuration from WITSYNC_<SIDE>_* variables."""
        config = {
            "project": cls.get_env_var(f"{side}_PROJECT", ""),
            "snapshot": cls.get_env_var(f"{side}_SNAPSHOT", None),
        }
        config.update(overrides)
        return cls(**config)


class FieldMapConfig(BaseModel):
    """
    A run-wide field map applied after the default field copy.

    ``value_map`` translates individual values; values missing from it fall
    back to ``default_value`` when one is given, otherwise pass through.
    """

    source_field: str
    target_field: str
    value_map: dict[str, Any] = Field(default_factory=dict)
    default_value: Any = None


class MigrationConfig(BaseConfig):
    """Run-wide migration policies."""

    reflected_id_field: str = Field(
        default="Custom.ReflectedWorkItemId",
        description="Reference name of the field holding the reflected identity",
        min_length=1,
    )
    prefix_project_to_nodes: bool = Field(
        default=False,
        description="Mirror trees under a root named after the source project and "
        "prefix paths with the target project instead of substituting the project name",
    )
    update_created_date: bool = Field(
        default=True,
        description="Carry the source created date onto new work items",
    )
    update_created_by: bool = Field(
        default=True,
        description="Carry the source creator onto new work items",
    )
    update_source_reflected_id: bool = Field(
        default=False,
        description="Write the identity of the new target item back onto the source item",
    )
    work_item_types: dict[str, str] = Field(
        default_factory=dict,
        description="Source work item type to target work item type",
    )
    field_maps: list[FieldMapConfig] = Field(default_factory=list)
    query_conditions: list[FieldCondition] = Field(
        default_factory=list,
        description="Extra filter conditions for the source work item query",
    )
    kinds: list[MigrationKind] = Field(
        default_factory=lambda: list(MigrationKind),
        description="Migration kinds to run, in order",
    )

    @model_validator(mode="after")
    def validate_kinds(self):
        """Reject duplicate migration kinds."""
        if len(set(self.kinds)) != len(self.kinds):
            raise ValueError("Each migration kind may only be listed once")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "MigrationConfig":
        """Create a migration configuration from environment variables."""
        config: dict[str, Any] = {
            "reflected_id_field": cls.get_env_var(
                "REFLECTED_ID_FIELD", "Custom.ReflectedWorkItemId"
            ),
            "prefix_project_to_nodes": cls.get_env_flag("PREFIX_PROJECT_TO_NODES", False),
            "update_created_date": cls.get_env_flag("UPDATE_CREATED_DATE", True),
            "update_created_by": cls.get_env_flag("UPDATE_CREATED_BY", True),
            "update_source_reflected_id": cls.get_env_flag("UPDATE_SOURCE_REFLECTED_ID", False),
        }
        kinds = cls.get_env_var("KINDS")
        if kinds:
            config["kinds"] = [kind.strip() for kind in kinds.split(",") if kind.strip()]
        config.update(overrides)
        return cls(**config)


class AppConfig(BaseConfig):
    """Main application configuration that aggregates all other configurations."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    source: EndpointConfig
    target: EndpointConfig
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    debug: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Create an application configuration from environment variables."""
        config: dict[str, Any] = {
            "logging": LoggingConfig.from_env(),
            "source": EndpointConfig.from_env("SOURCE"),
            "target": EndpointConfig.from_env("TARGET"),
            "migration": MigrationConfig.from_env(),
            "debug": cls.get_env_flag("DEBUG", False),
        }
        config.update(overrides)
        return cls(**config)

    @classmethod
    def from_file(cls, path: str | Path, **overrides) -> "AppConfig":
        """
        Load an application configuration from a JSON file.

        Args:
        ----
            path: Path to the JSON configuration file
            **overrides: Top-level keys replacing values read from the file

        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        data.update(overrides)
        logger.debug(f"Loaded configuration from {path}")
        return cls.model_validate(data)

    def configure_logging(self) -> None:
        """Configure logging based on the settings."""
        self.logging.configure_logging(debug=self.debug)


# Global app configuration
_app_config: AppConfig | None = None


def get_app_config() -> AppConfig:
    """
    Get the global application configuration.

    Returns
    -------
        The application configuration instance

    """
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config


def init_app_config(config: AppConfig | None = None, **kwargs) -> AppConfig:
    """
    Initialize the global application configuration.

    Args:
    ----
        config: An existing AppConfig instance
        **kwargs: Key-value pairs for creating a new AppConfig from the environment

    Returns:
    -------
        The application configuration instance

    """
    global _app_config
    _app_config = config if config is not None else AppConfig.from_env(**kwargs)
    return _app_config
