"""Collection adapter for RethinkDB."""

from .collection import CollectionDefinition, Lookup, normalize_attributes, select_lookup
from .rethinkdb_adapter import DEFAULTS, RethinkDBAdapter

__all__ = [
    "CollectionDefinition",
    "DEFAULTS",
    "Lookup",
    "RethinkDBAdapter",
    "normalize_attributes",
    "select_lookup",
]
