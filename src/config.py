"""
Configuration module for the VirtualMachine operator.

Loads configuration from environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "vmsync_operator"
    user: str = "operator"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 5
    max_pool_size: int = 20

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        password = os.getenv("DB_PASSWORD", "")
        if not password:
            raise ValueError(
                "DB_PASSWORD environment variable must be set. "
                "Database password cannot be empty."
            )

        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "vmsync_operator"),
            user=os.getenv("DB_USER", "operator"),
            password=password,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "5")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "20")),
        )


@dataclass
class ControllerConfig:
    """Reconciliation scheduling configuration."""

    sync_interval: float = 30  # seconds between syncs of a healthy VM
    resync_interval: float = 60  # seconds between store listings
    max_concurrent_reconciles: int = 5
    reconcile_timeout: Optional[float] = 30  # per store/provider call

    # Exponential backoff configuration
    backoff_base_delay: float = 1  # base delay in seconds
    backoff_max_delay: float = 300  # max delay in seconds
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        timeout = float(os.getenv("RECONCILE_TIMEOUT", "30"))
        return cls(
            sync_interval=float(os.getenv("SYNC_INTERVAL", "30")),
            resync_interval=float(os.getenv("RESYNC_INTERVAL", "60")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            reconcile_timeout=timeout if timeout > 0 else None,
            backoff_base_delay=float(os.getenv("BACKOFF_BASE_DELAY", "1")),
            backoff_max_delay=float(os.getenv("BACKOFF_MAX_DELAY", "300")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
        )


@dataclass
class MetricsConfig:
    """Prometheus exporter configuration."""

    enabled: bool = True
    port: int = 8080

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            enabled=os.getenv("METRICS_ENABLED", "true").lower() == "true",
            port=int(os.getenv("METRICS_PORT", "8080")),
        )


@dataclass
class ProviderConfig:
    """Provider gateway selection and overrides."""

    plugin: str = "static"
    # Overrides merged on top of the provider's own environment config
    plugin_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        plugin_config = {}
        if os.getenv("PROVIDER_CONFIG"):
            try:
                parsed = json.loads(os.getenv("PROVIDER_CONFIG"))
            except json.JSONDecodeError:
                parsed = None
            # Only a JSON object can be merged into the provider config
            if isinstance(parsed, dict):
                plugin_config = parsed

        return cls(
            plugin=os.getenv("PROVIDER_PLUGIN", "static"),
            plugin_config=plugin_config,
        )


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig
    controller: ControllerConfig
    metrics: MetricsConfig
    provider: ProviderConfig
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            controller=ControllerConfig.from_env(),
            metrics=MetricsConfig.from_env(),
            provider=ProviderConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            database=DatabaseConfig(),
            controller=ControllerConfig(),
            metrics=MetricsConfig(),
            provider=ProviderConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
