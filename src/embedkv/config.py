"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

from embedkv.exceptions import ConfigError

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


class StoreConfig(BaseModel):
    """Store backend configuration."""

    backend: str = "memory"
    options: dict[str, Any] = Field(default_factory=dict)  # Backend-specific settings


class ReaperConfig(BaseModel):
    """Expiry reaper settings."""

    enabled: bool = True
    interval_seconds: PositiveFloat = 1.0
    sample_size: PositiveInt = 20


class NamedCacheConfig(BaseModel):
    """Overrides for one named cache."""

    ttl_seconds: PositiveFloat | None = None


class CacheConfig(BaseModel):
    """Cache layer settings."""

    default_ttl_seconds: PositiveFloat | None = 600.0
    key_separator: str = "::"
    cache_none: bool = False
    caches: dict[str, NamedCacheConfig] = Field(default_factory=dict)

    def ttl_for(self, name: str) -> float | None:
        named = self.caches.get(name)
        if named is not None and named.ttl_seconds is not None:
            return named.ttl_seconds
        return self.default_ttl_seconds


class PublisherConfig(BaseModel):
    """Scheduled order publisher settings."""

    stream: str = "orders"
    interval_seconds: PositiveFloat = 10.0
    max_length: PositiveInt | None = None


class PubSubConfig(BaseModel):
    """Pub/sub broker settings."""

    max_pending: int = Field(default=0, ge=0)  # 0 = unbounded


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for embedkv."""

    client_name: str = "embedkv"
    store: StoreConfig = Field(default_factory=StoreConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    pubsub: PubSubConfig = Field(default_factory=PubSubConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        try:
            with path.open() as f:
                if path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read configuration {path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        try:
            data = substitute_env_vars(data)
            return cls.model_validate(data)
        except ValueError as e:
            raise ConfigError(str(e)) from e
