"""Pooled query execution."""

from .config import PoolConfig
from .connection_pool import ConnectionPool, PooledConnection, create_pool
from .driver import RethinkDBConnectionFactory
from .manager import PoolManager
from .transport import is_transport_error

__all__ = [
    "ConnectionPool",
    "PoolConfig",
    "PooledConnection",
    "PoolManager",
    "RethinkDBConnectionFactory",
    "create_pool",
    "is_transport_error",
]
