"""Custom exception classes for the RethinkDB adapter."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AdapterError(Exception):
    """Base exception for the RethinkDB adapter."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize adapter error.

        Args:
            message: Error message
            recoverable: Whether the error is recoverable with retry
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Configuration Errors
class ConfigurationError(AdapterError):
    """Configuration error occurred."""

    def __init__(
        self,
        message: str = "Configuration error",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


# Pool Errors
class PoolError(AdapterError):
    """Base class for connection pool errors."""

    def __init__(
        self,
        message: str = "Connection pool error",
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class PoolExhaustedError(PoolError):
    """Raised when an acquire times out waiting for a free connection."""

    def __init__(self, timeout: Optional[float], pool_size: int):
        self.timeout = timeout
        self.pool_size = pool_size
        super().__init__(
            f"No connection available within {timeout}s (pool size: {pool_size})",
            recoverable=True,
            details={"timeout": timeout, "pool_size": pool_size},
        )


class PoolClosedError(PoolError):
    """Raised when the pool is draining or closed."""

    def __init__(self, message: str = "Connection pool is closed"):
        super().__init__(message, recoverable=False)


class PoolDrainTimeoutError(PoolError):
    """Raised when lent connections are not returned before the drain timeout."""

    def __init__(self, timeout: float, outstanding: int):
        self.timeout = timeout
        self.outstanding = outstanding
        super().__init__(
            f"Pool drain timed out after {timeout}s ({outstanding} connections still lent)",
            recoverable=False,
            details={"timeout": timeout, "outstanding": outstanding},
        )


class ConnectionCreateError(PoolError):
    """Raised when the connection factory fails."""

    def __init__(self, message: str = "Failed to create connection", cause: Optional[str] = None):
        details = {"cause": cause} if cause else {}
        super().__init__(message, recoverable=True, details=details)


# Query Errors
class TransportError(AdapterError):
    """Fatal I/O error on a lent connection. The connection is destroyed."""

    def __init__(self, message: str = "Connection transport failed", cause: Optional[str] = None):
        details = {"cause": cause} if cause else {}
        super().__init__(message, recoverable=True, details=details)


class QueryError(AdapterError):
    """Query failed on a healthy connection."""

    def __init__(
        self,
        message: str = "Query failed",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class UniqueConstraintError(QueryError):
    """Raised when a unique attribute already holds the given value."""

    def __init__(self, attribute: str, value: Any):
        self.attribute = attribute
        self.value = value
        super().__init__(
            f"Unique constraint failure on '{attribute}'",
            details={"attribute": attribute, "value": value},
        )


class TableOperationError(QueryError):
    """Raised when a table could not be created or dropped."""

    def __init__(self, operation: str, table: str):
        super().__init__(
            f"Failed to {operation} table: {table}",
            details={"operation": operation, "table": table},
        )


class CollectionNotRegisteredError(AdapterError):
    """Raised when an operation targets an unknown collection."""

    def __init__(self, collection: str):
        super().__init__(
            f"Collection '{collection}' is not registered",
            recoverable=False,
            details={"collection": collection},
        )
