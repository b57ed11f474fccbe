"""Adapter settings with Pydantic validation."""

from typing import Any, Dict, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rethinkdb_adapter.pool.config import PoolConfig

MIGRATE_STRATEGIES = ("alter", "drop", "safe")


class AdapterSettings(BaseSettings):
    """Adapter settings with validation and environment variable support."""

    # Server
    host: str = Field(default="localhost", description="RethinkDB server host")
    port: int = Field(default=28015, ge=1, le=65535, description="RethinkDB driver port")
    db: str = Field(default="test", description="Default database for queries")
    user: str = Field(default="admin", description="RethinkDB user")
    password: SecretStr = Field(default=SecretStr(""), description="RethinkDB user password")
    timeout: float = Field(default=20.0, gt=0, description="Connect timeout in seconds")

    # Connection pool
    pool_min: int = Field(default=2, ge=0, description="Connections kept warm")
    pool_max: int = Field(default=10, ge=1, le=1000, description="Hard cap on connections")
    pool_idle_timeout: float = Field(
        default=30.0, gt=0, description="Seconds before an idle connection may be reaped"
    )
    pool_reap_interval: float = Field(
        default=1.0, gt=0, description="Seconds between idle reaping sweeps"
    )
    pool_acquire_timeout: Optional[float] = Field(
        default=30.0, gt=0, description="Seconds to wait for a free connection (None waits forever)"
    )

    # Collections
    migrate: str = Field(default="alter", description="Schema sync strategy (alter, drop, safe)")

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_prefix="RETHINKDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("migrate")
    @classmethod
    def validate_migrate(cls, v: str) -> str:
        """Validate migrate strategy."""
        if v.lower() not in MIGRATE_STRATEGIES:
            raise ValueError(f'MIGRATE must be one of: {", ".join(MIGRATE_STRATEGIES)}')
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f'LOG_LEVEL must be one of: {", ".join(allowed)}')
        return v_upper

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "AdapterSettings":
        """Validate pool_min does not exceed pool_max."""
        if self.pool_min > self.pool_max:
            raise ValueError("POOL_MIN must be <= POOL_MAX")
        return self

    def to_pool_config(self) -> PoolConfig:
        """
        Build the pool configuration from these settings.

        Returns:
            PoolConfig instance
        """
        return PoolConfig(
            min_size=self.pool_min,
            max_size=self.pool_max,
            idle_timeout=self.pool_idle_timeout,
            reap_interval=self.pool_reap_interval,
            acquire_timeout=self.pool_acquire_timeout,
        )

    def connection_options(self) -> Dict[str, Any]:
        """
        Get keyword arguments for the driver's connect call.

        Returns:
            Dictionary of connection options
        """
        return {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "user": self.user,
            "password": self.password.get_secret_value(),
            "timeout": self.timeout,
        }


# Singleton instance
_settings: Optional[AdapterSettings] = None


def get_settings() -> AdapterSettings:
    """
    Get adapter settings singleton.

    Returns:
        AdapterSettings instance

    Raises:
        ValidationError: If settings are invalid
    """
    global _settings
    if _settings is None:
        _settings = AdapterSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
