"""Connection pool configuration."""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from rethinkdb_adapter.core.exceptions import ConfigurationError

# Accepted aliases for the option names used by node-style pool configs
_ALIASES = {
    "min": "min_size",
    "max": "max_size",
    "idleTimeout": "idle_timeout",
    "reapInterval": "reap_interval",
    "acquireTimeout": "acquire_timeout",
}


@dataclass(frozen=True)
class PoolConfig:
    """Configuration for connection pool."""

    # Pool size limits
    min_size: int = 2
    max_size: int = 10

    # Idle reaping, in seconds
    idle_timeout: float = 30.0
    reap_interval: float = 1.0

    # Seconds a queued acquire may wait; None waits forever
    acquire_timeout: Optional[float] = 30.0

    def __post_init__(self) -> None:
        if self.min_size < 0:
            raise ConfigurationError("min_size must be >= 0", details={"min_size": self.min_size})
        if self.max_size < 1:
            raise ConfigurationError("max_size must be >= 1", details={"max_size": self.max_size})
        if self.min_size > self.max_size:
            raise ConfigurationError(
                "max_size must be >= min_size",
                details={"min_size": self.min_size, "max_size": self.max_size},
            )
        if self.idle_timeout <= 0:
            raise ConfigurationError("idle_timeout must be > 0")
        if self.reap_interval <= 0:
            raise ConfigurationError("reap_interval must be > 0")
        if self.acquire_timeout is not None and self.acquire_timeout <= 0:
            raise ConfigurationError("acquire_timeout must be > 0 or None")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolConfig":
        """
        Create from dictionary.

        Unknown keys (host, port, db, ...) are ignored so a whole adapter
        options mapping can be passed in.
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in _normalize(data).items() if k in known})

    def merge(self, data: Dict[str, Any]) -> "PoolConfig":
        """Return a copy with the pool options found in ``data`` applied."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in _normalize(data).items() if k in known})


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(key, key): value for key, value in data.items()}
