"""Core infrastructure module."""

from .exceptions import (
    # Base exception
    AdapterError,
    # Configuration
    ConfigurationError,
    # Pool
    PoolError,
    PoolExhaustedError,
    PoolClosedError,
    PoolDrainTimeoutError,
    ConnectionCreateError,
    # Queries
    TransportError,
    QueryError,
    UniqueConstraintError,
    TableOperationError,
    # Collections
    CollectionNotRegisteredError,
)
from .logger import run_id_ctx, setup_structured_logging

__all__ = [
    "setup_structured_logging",
    "run_id_ctx",
    # Exceptions
    "AdapterError",
    "ConfigurationError",
    "PoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "PoolDrainTimeoutError",
    "ConnectionCreateError",
    "TransportError",
    "QueryError",
    "UniqueConstraintError",
    "TableOperationError",
    "CollectionNotRegisteredError",
]
