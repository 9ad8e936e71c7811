"""Centralized configuration management using Pydantic settings.

This module provides type-safe, validated configuration loading from:
1. YAML config files (config.yaml + environment overlays)
2. Environment variables (and an optional .env file)

When a section is present in YAML it is validated as given; sections that
are absent from YAML are populated from environment variables.

Usage:
    from MMS.services.shared.settings import get_settings

    settings = get_settings()
    port = settings.server.port
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MMS_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_SITES_PATH = MMS_ROOT / "config" / "sites.json"
DEFAULT_PUBLIC_DIR = MMS_ROOT / "public"


# === Server Configuration ===

class ServerConfig(BaseSettings):
    """HTTP server configuration."""
    host: str = Field("0.0.0.0", validation_alias=AliasChoices("host", "MMS_HOST"))
    port: int = Field(3000, validation_alias=AliasChoices("port", "PORT"))
    public_dir: str = Field(
        str(DEFAULT_PUBLIC_DIR),
        validation_alias=AliasChoices("public_dir", "MMS_PUBLIC_DIR"),
    )


# === Site Registry Configuration ===

class RegistryConfig(BaseSettings):
    """Location of the site descriptor document."""
    sites_path: str = Field(
        str(DEFAULT_SITES_PATH),
        validation_alias=AliasChoices("sites_path", "MMS_SITES_PATH"),
    )


# === Fetch Configuration ===

class FetchConfig(BaseSettings):
    """Outbound request settings shared by every site fetch."""
    timeout_seconds: float = Field(
        15.0,
        validation_alias=AliasChoices("timeout_seconds", "MMS_FETCH_TIMEOUT_SECONDS"),
    )
    referer: str = Field(
        "https://google.com/",
        validation_alias=AliasChoices("referer", "MMS_FETCH_REFERER"),
    )

    @field_validator("timeout_seconds")
    def positive_timeout(cls, v):
        if v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v


# === Concurrency Configuration ===

class ConcurrencyConfig(BaseSettings):
    """Fan-out parallelism."""
    max_workers: int = Field(
        16, validation_alias=AliasChoices("max_workers", "MMS_MAX_WORKERS")
    )

    @field_validator("max_workers")
    def at_least_one_worker(cls, v):
        if v < 1:
            raise ValueError("max_workers must be at least 1")
        return v


# === Observability Configuration ===

class SentryConfig(BaseSettings):
    """Sentry error tracking configuration."""
    dsn: Optional[SecretStr] = Field(None, validation_alias=AliasChoices("dsn", "SENTRY_DSN"))
    traces_sample_rate: float = Field(
        0.1, validation_alias=AliasChoices("traces_sample_rate", "SENTRY_TRACES_SAMPLE_RATE")
    )
    environment: str = Field(
        "development", validation_alias=AliasChoices("environment", "MMS_ENV")
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""
    level: str = Field("INFO", validation_alias=AliasChoices("level", "LOG_LEVEL"))


class ObservabilityConfig(BaseSettings):
    """Observability and monitoring settings."""
    sentry: SentryConfig = Field(default_factory=SentryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# === Main Settings ===

class MMSSettings(BaseSettings):
    """Main MMS configuration."""
    environment: str = Field(
        "development", validation_alias=AliasChoices("environment", "MMS_ENV")
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


def _load_yaml_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from YAML files with environment overlay.

    Args:
        config_path: Path to base config file. If None, uses
                    MMS/config/config.yaml.

    Returns:
        Merged configuration dictionary.
    """
    if config_path is None:
        config_path = MMS_ROOT / "config" / "config.yaml"

    if not config_path.exists():
        # Return empty dict if no config file found (env vars will be used)
        return {}

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    # Load environment-specific overlay
    env = os.getenv("MMS_ENV", config.get("environment", "development"))
    env_config_path = config_path.parent / f"config.{env}.yaml"

    if env_config_path.exists():
        with open(env_config_path, "r") as f:
            env_config = yaml.safe_load(f) or {}

        config = _deep_merge(config, env_config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override dict into base dict."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


@lru_cache(maxsize=1)
def get_settings(config_path: Optional[Path] = None) -> MMSSettings:
    """Get cached settings instance.

    Args:
        config_path: Optional path to base config file.

    Returns:
        Singleton MMSSettings instance.
    """
    yaml_config = _load_yaml_config(config_path)
    return MMSSettings(**yaml_config)


def reload_settings(config_path: Optional[Path] = None) -> MMSSettings:
    """Force reload of settings (clears cache).

    Useful for testing or runtime config updates.
    """
    get_settings.cache_clear()
    return get_settings(config_path)
