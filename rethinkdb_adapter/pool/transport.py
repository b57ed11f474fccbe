"""Classification of query failures into transport and query errors."""

import asyncio
from typing import Tuple, Type

from rethinkdb.errors import ReqlDriverCompileError, ReqlDriverError, ReqlTimeoutError

from rethinkdb_adapter.core.exceptions import TransportError

# Failures after which a connection cannot be trusted for another query
TRANSPORT_ERRORS: Tuple[Type[BaseException], ...] = (
    TransportError,
    ReqlDriverError,
    ReqlTimeoutError,
    ConnectionError,
    EOFError,
    OSError,
    asyncio.TimeoutError,
)


def is_transport_error(exc: BaseException) -> bool:
    """
    Check whether a query failure left the connection unusable.

    Driver compile errors are raised before anything is sent on the wire, so
    they count as query errors.

    Args:
        exc: Exception raised while running a query

    Returns:
        True if the connection should be destroyed rather than released
    """
    if isinstance(exc, ReqlDriverCompileError):
        return False
    return isinstance(exc, TRANSPORT_ERRORS)
