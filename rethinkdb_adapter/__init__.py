"""rethinkdb-adapter - Pooled RethinkDB query execution and collection adapter."""

import importlib as _importlib
from typing import TYPE_CHECKING, Any

__version__ = "0.4.0"
__license__ = "MIT"

if TYPE_CHECKING:
    from .adapter import CollectionDefinition as CollectionDefinition
    from .adapter import RethinkDBAdapter as RethinkDBAdapter
    from .core.logger import setup_structured_logging as setup_structured_logging
    from .core.settings import AdapterSettings as AdapterSettings
    from .core.settings import get_settings as get_settings
    from .pool import ConnectionPool as ConnectionPool
    from .pool import PoolConfig as PoolConfig
    from .pool import PoolManager as PoolManager
    from .pool import RethinkDBConnectionFactory as RethinkDBConnectionFactory
    from .pool import create_pool as create_pool

# Explicit lazy-loading map: name -> (module_path, attribute_name)
_LAZY_MODULE_MAP = {
    # Adapter
    "RethinkDBAdapter": ("rethinkdb_adapter.adapter", "RethinkDBAdapter"),
    "CollectionDefinition": ("rethinkdb_adapter.adapter", "CollectionDefinition"),
    # Pool
    "ConnectionPool": ("rethinkdb_adapter.pool", "ConnectionPool"),
    "PoolConfig": ("rethinkdb_adapter.pool", "PoolConfig"),
    "PoolManager": ("rethinkdb_adapter.pool", "PoolManager"),
    "RethinkDBConnectionFactory": ("rethinkdb_adapter.pool", "RethinkDBConnectionFactory"),
    "create_pool": ("rethinkdb_adapter.pool", "create_pool"),
    # Core
    "AdapterSettings": ("rethinkdb_adapter.core.settings", "AdapterSettings"),
    "get_settings": ("rethinkdb_adapter.core.settings", "get_settings"),
    "setup_structured_logging": ("rethinkdb_adapter.core.logger", "setup_structured_logging"),
}

__all__ = list(_LAZY_MODULE_MAP.keys())


def __getattr__(name: str) -> Any:
    """Lazy import with explicit mapping - importlib based."""
    if name in _LAZY_MODULE_MAP:
        module_path, attr_name = _LAZY_MODULE_MAP[name]
        module = _importlib.import_module(module_path)
        attr = getattr(module, attr_name)
        # Cache in module globals to avoid repeated imports
        globals()[name] = attr
        return attr
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
