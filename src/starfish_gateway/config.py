"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from starfish_gateway.exceptions import ConfigError
from starfish_gateway.observability import LogLevel

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def read_document(path: str | Path) -> Any:
    """Read a YAML or JSON document, choosing the parser by file suffix."""
    path = Path(path)
    with path.open() as f:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


class StarfishConfig(BaseModel):
    """Starfish API connection settings."""

    endpoint: str
    token: str
    file_server_url: str | None = None  # Enables GetObject when set
    timeout_seconds: float = 30.0
    query_limit: int = 1000
    collections_tagset: str = "Collections"
    verify_tls: bool = True

    @field_validator("endpoint", "token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class CacheConfig(BaseModel):
    """Query result cache settings."""

    ttl_seconds: int = Field(default=3600, gt=0)


class CollectionsConfig(BaseModel):
    """Bucket discovery settings."""

    refresh_interval_seconds: int = Field(default=600, gt=0)
    refresh_on_start: bool = True


class RewriteConfig(BaseModel):
    """Path rewrite settings."""

    rules_path: str | None = None


class ListingConfig(BaseModel):
    """Listing behaviour settings."""

    default_max_keys: int = Field(default=1000, ge=0)
    strict_prefix: bool = False  # False keeps keys outside the requested prefix


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 7070


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json | text

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LogLevel.__members__:
            raise ValueError(f"unknown log level: {value}")
        return value


class Config(BaseModel):
    """Main configuration for starfish-gateway."""

    starfish: StarfishConfig
    cache: CacheConfig = Field(default_factory=CacheConfig)
    collections: CollectionsConfig = Field(default_factory=CollectionsConfig)
    rewrite: RewriteConfig = Field(default_factory=RewriteConfig)
    listing: ListingConfig = Field(default_factory=ListingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        try:
            data = read_document(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read configuration file {path}: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        try:
            data = substitute_env_vars(data)
            return cls.model_validate(data)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
