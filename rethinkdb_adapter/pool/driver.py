"""RethinkDB driver binding: the connection factory used by the pool."""

from typing import Any, Dict, Optional

from loguru import logger
from rethinkdb import r

from rethinkdb_adapter.utils.masking import describe_endpoint, mask_connection_options

# Options understood by ``r.connect``
CONNECT_OPTIONS = ("host", "port", "db", "user", "password", "timeout", "ssl")

DEFAULT_OPTIONS: Dict[str, Any] = {
    "host": "localhost",
    "port": 28015,
    "db": "test",
}


def connect_kwargs(options: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract ``r.connect`` keyword arguments from adapter options.

    The legacy ``auth_key``/``authKey`` option is passed on as the password.

    Args:
        options: Adapter options (pool options and unknown keys are ignored)

    Returns:
        Keyword arguments for ``r.connect``
    """
    merged = {**DEFAULT_OPTIONS, **options}
    auth_key = merged.get("auth_key") or merged.get("authKey")
    if auth_key and not merged.get("password"):
        merged["password"] = auth_key
    return {key: merged[key] for key in CONNECT_OPTIONS if merged.get(key) not in (None, "")}


class RethinkDBConnectionFactory:
    """Opens asyncio RethinkDB connections for the pool."""

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        """
        Initialize connection factory.

        Args:
            options: Connection options (host, port, db, user, password, timeout, ssl)
        """
        r.set_loop_type("asyncio")
        self.options = connect_kwargs(options or {})

    async def __call__(self) -> Any:
        """Open a new connection."""
        logger.debug(
            f"Connecting to RethinkDB at {describe_endpoint(self.options)} "
            f"with {mask_connection_options(self.options)}"
        )
        return await r.connect(**self.options)

    def __repr__(self) -> str:
        return f"RethinkDBConnectionFactory({describe_endpoint(self.options)})"
