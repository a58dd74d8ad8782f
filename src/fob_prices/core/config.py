"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from urllib.parse import quote

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from fob_prices.core.exceptions import ConfigError
from fob_prices.core.models import (
    DEFAULT_BASE_URL,
    EPOCH_DATE,
    TABLE_NAME,
    StorageBackend,
)

# Connection settings read from the process environment, unprefixed.
_POSTGRES_ENV = {
    "POSTGRES_USER": "user",
    "POSTGRES_PASSWORD": "password",
    "POSTGRES_HOST": "host",
    "POSTGRES_PORT": "port",
    "POSTGRES_DB": "database",
}


# Leaf keys kept as strings from env vars even when they look numeric.
_STRING_KEYS = frozenset(
    {"user", "password", "host", "database", "postgresql_url", "sqlite_path", "table", "base_url"}
)

class UpstreamConfig(BaseModel):
    """FOB price web service access configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_BASE_URL
    max_retries: int = 3
    backoff_seconds: float = 2.0
    rate_limit: int = 2
    request_timeout: int = 30

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v

    @field_validator("max_retries")
    @classmethod
    def max_retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v

    @field_validator("backoff_seconds")
    @classmethod
    def backoff_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("backoff_seconds must be >= 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v


class PostgresSettings(BaseModel):
    """Discrete PostgreSQL connection parameters (POSTGRES_* variables)."""

    model_config = ConfigDict(frozen=True)

    user: str = ""
    password: str = ""
    host: str
    port: int = 5432
    database: str = ""

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{quote(self.user, safe='')}:{quote(self.password, safe='')}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/fob_prices.db"
    postgresql_url: str | None = None
    postgres: PostgresSettings | None = None
    table: str = TABLE_NAME

    @model_validator(mode="after")
    def pg_url_required_for_pg(self) -> StorageConfig:
        if self.backend == StorageBackend.POSTGRESQL and self.dsn is None:
            raise ValueError(
                "postgresql_url or POSTGRES_HOST is required when backend is 'postgresql'"
            )
        return self

    @field_validator("table")
    @classmethod
    def table_is_identifier(cls, v: str) -> str:
        if not v.replace("_", "").isalnum():
            raise ValueError(f"table must be a plain SQL identifier, got {v!r}")
        return v

    @property
    def dsn(self) -> str | None:
        """PostgreSQL DSN: explicit URL first, then discrete settings."""
        if self.postgresql_url:
            return self.postgresql_url
        if self.postgres is not None:
            return self.postgres.dsn
        return None


class IngestConfig(BaseModel):
    """Ingestion run settings."""

    model_config = ConfigDict(frozen=True)

    epoch_date: date = EPOCH_DATE


class FobConfig(BaseModel):
    """Root configuration for the fob-prices ingester."""

    model_config = ConfigDict(frozen=True)

    upstream: UpstreamConfig = UpstreamConfig()
    storage: StorageConfig = StorageConfig()
    ingest: IngestConfig = IngestConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "FOB_PRICES_",
) -> FobConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. POSTGRES_USER / POSTGRES_PASSWORD / POSTGRES_HOST / POSTGRES_PORT /
       POSTGRES_DB. Setting POSTGRES_HOST selects the PostgreSQL backend.
    2. Environment variables (FOB_PRICES_UPSTREAM__MAX_RETRIES, etc.)
    3. YAML file at config_path
    4. Built-in defaults

    Nested keys use double-underscore in env vars:
        FOB_PRICES_STORAGE__SQLITE_PATH=/tmp/fob.db  ->  storage.sqlite_path
    """
    try:
        yaml_path = _resolve_config_path(config_path, env_prefix)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        merged = _merge_postgres_env(merged)
        return FobConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None, env_prefix: str) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_var = f"{env_prefix}CONFIG"
    env_path = os.environ.get(env_var)
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from {env_var} not found: {env_path}",
                context={"field": env_var, "value": env_path},
            )
        return p

    default = Path("fob-prices.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int,
    except for keys in _STRING_KEYS.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = value if parts[-1] in _STRING_KEYS else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _merge_postgres_env(base: dict) -> dict:
    """Overlay POSTGRES_* connection variables onto the storage section.

    Values are kept as strings (passwords may look numeric); pydantic
    coerces the port.
    """
    settings = {
        field: os.environ[var]
        for var, field in _POSTGRES_ENV.items()
        if os.environ.get(var)
    }
    if "host" not in settings:
        return base

    result = dict(base)
    storage = dict(result.get("storage") or {})
    storage["postgres"] = settings
    storage["backend"] = StorageBackend.POSTGRESQL.value
    result["storage"] = storage
    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
