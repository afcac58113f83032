"""
Configuration system for spanform using Pydantic.
"""

import os
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, ConfigDict
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError


class SpannerConnection(BaseModel):
    """Spanner database connection configuration."""

    project: str = Field(..., description="Google Cloud project id")
    instance: str = Field(..., description="Spanner instance id")
    database: str = Field(..., description="Spanner database id")
    ddl_timeout: float = Field(
        600.0, description="Seconds to wait for a schema change to complete"
    )
    query_timeout: float = Field(60.0, description="Catalog query timeout in seconds")

    @property
    def database_path(self) -> str:
        """Get the fully-qualified database path."""
        return (
            f"projects/{self.project}/instances/{self.instance}/"
            f"databases/{self.database}"
        )

    def table_name(self, table_id: str) -> str:
        """Get the fully-qualified name of a table in this database."""
        return f"{self.database_path}/tables/{table_id}"


class MetadataStoreConfig(BaseModel):
    """Column metadata store configuration."""

    table_name: str = Field(
        "column_metadata", description="Table holding per-column semantic facts"
    )
    ensure_attempts: int = Field(
        5, description="Attempts at creating the metadata table"
    )
    ensure_initial_delay: float = Field(
        1.0, description="Base retry delay in seconds for metadata table creation"
    )


class DescriptorConfig(BaseModel):
    """Proto descriptor set fetching configuration."""

    http_timeout: int = Field(30, description="HTTP fetch timeout in seconds")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class SpanformConfig(BaseSettings):
    """Main spanform configuration."""

    spanner: SpannerConnection = Field(..., description="Spanner connection")
    metadata: MetadataStoreConfig = Field(
        default_factory=MetadataStoreConfig,
        description="Column metadata store configuration",
    )
    descriptors: DescriptorConfig = Field(
        default_factory=DescriptorConfig,
        description="Proto descriptor fetching configuration",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="SPANFORM_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SpanformConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data
