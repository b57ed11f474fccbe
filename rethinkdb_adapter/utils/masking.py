"""Utility functions for masking sensitive connection data in logs."""

from typing import Any, Dict, Optional, Set

DEFAULT_SENSITIVE_KEYS = {"password", "auth_key", "authkey", "secret", "token", "ssl"}


def mask_password(_password: str) -> str:
    """
    Completely mask password.

    Args:
        _password: Password to mask (unused, parameter for API consistency)

    Returns:
        Masked password (always ******** - 8 asterisks)
    """
    return "********"


def mask_connection_options(
    options: Dict[str, Any], sensitive_keys: Optional[Set[str]] = None
) -> Dict[str, Any]:
    """
    Mask credentials in driver connection options for safe logging.

    Matching is case-insensitive and substring based, so ``authKey`` and
    ``auth_key`` are both caught.

    Args:
        options: Keyword arguments that will be passed to ``r.connect``
        sensitive_keys: Set of keys to mask (uses defaults if None)

    Returns:
        New dictionary with masked sensitive values

    Examples:
        >>> mask_connection_options({"host": "db", "password": "s3cret"})
        {'host': 'db', 'password': '********'}
    """
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_KEYS

    masked: Dict[str, Any] = {}
    for key, value in options.items():
        key_lower = key.lower()
        if value and any(sensitive in key_lower for sensitive in sensitive_keys):
            masked[key] = mask_password(str(value))
        else:
            masked[key] = value
    return masked


def describe_endpoint(options: Dict[str, Any]) -> str:
    """Render ``host:port/db`` for log lines, without credentials."""
    host = options.get("host", "localhost")
    port = options.get("port", 28015)
    db = options.get("db")
    endpoint = f"{host}:{port}"
    return f"{endpoint}/{db}" if db else endpoint
