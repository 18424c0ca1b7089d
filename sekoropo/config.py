"""Sekoropo configuration management with environment variable overrides.

Configuration values come from:
- Environment variables (SEKOROPO_*, nested with ``__``)
- An optional YAML config file
- Pydantic defaults (lowest priority)

Example:
    SEKOROPO_STORE__BACKEND=duckdb SEKOROPO_STORE__PATH=./sekoropo.duckdb sekoropo info
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StoreConfig(BaseModel):
    """Document store configuration.

    Attributes:
        backend: Store backend (memory, duckdb)
        path: DuckDB database path (":memory:" for an in-process database)
    """

    backend: Literal["memory", "duckdb"] = "memory"
    path: str = ":memory:"


class CollectionsConfig(BaseModel):
    """Collection names used by the services."""

    jobs: str = "jobs"
    applications: str = "applications"
    payments: str = "payments"
    reviews: str = "reviews"
    disputes: str = "disputes"
    messages: str = "messages"
    notifications: str = "notifications"
    profiles: str = "profiles"
    settings: str = "platform_settings"


class QueryConfig(BaseModel):
    """Pagination defaults.

    Attributes:
        default_limit: Page size when the caller does not give one
        featured_limit: Page size for featured jobs
        top_providers_limit: Page size for top-rated providers
        recent_reviews: Number of recent reviews in a rating summary
        stats_scan_limit: Upper bound of documents fetched for a statistic
    """

    default_limit: int = 20
    featured_limit: int = 10
    top_providers_limit: int = 10
    recent_reviews: int = 5
    stats_scan_limit: int = 10_000

    @field_validator(
        "default_limit", "featured_limit", "top_providers_limit", "recent_reviews", "stats_scan_limit"
    )
    @classmethod
    def non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value


class RoundingConfig(BaseModel):
    """Decimal places of reported averages."""

    rating_decimals: int = 1
    currency_decimals: int = 2
    hours_decimals: int = 2


class SekoropoConfig(BaseSettings):
    """Main Sekoropo configuration.

    Attributes:
        store: Document store configuration
        collections: Collection names
        query: Pagination defaults
        rounding: Rounding of averages
        platform_currency: Currency recorded on new payments
        metrics_enabled: Record Prometheus metrics
        telemetry_enabled: Set up OpenTelemetry tracing at startup
        environment: Deployment environment name
        debug: Enable debug mode
        log_level: Root log level used by the CLI
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    collections: CollectionsConfig = Field(default_factory=CollectionsConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    rounding: RoundingConfig = Field(default_factory=RoundingConfig)

    platform_currency: str = "BWP"

    # Monitoring
    metrics_enabled: bool = True
    telemetry_enabled: bool = False

    # Environment
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_prefix="sekoropo_",
        extra="ignore",
    )


def load_config_from_file(config_path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty if the file is missing or unreadable)
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Config file {config_path} does not contain a mapping")
        return {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def validate_store_config(config: SekoropoConfig) -> bool:
    """Check that a file-backed store has a usable parent directory.

    Creates the directory if needed.

    Returns:
        True if the store can be opened
    """
    if config.store.backend == "memory" or config.store.path == ":memory:":
        return True

    parent = Path(config.store.path).expanduser().parent
    if parent.exists():
        return True

    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create store directory {parent}: {e}")
        return False

    logger.info(f"Created store directory: {parent}")
    return True


def get_config(config_path: str | None = None) -> SekoropoConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        SekoropoConfig instance
    """
    if config_path:
        file_config = load_config_from_file(config_path)
        return SekoropoConfig(**file_config)

    return SekoropoConfig()
