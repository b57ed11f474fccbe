"""Collection definitions and key-lookup selection."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_PRIMARY_KEY = "id"

PRIMARY = "primary"
SECONDARY = "secondary"
SCAN = "scan"


@dataclass
class CollectionDefinition:
    """A registered collection: its attributes, primary key and unique indexes."""

    identity: str
    attributes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    primary_key: Optional[str] = None
    secondary_indices: List[str] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.attributes = normalize_attributes(self.attributes)
        if self.primary_key is None:
            self.primary_key = next(
                (name for name, attr in self.attributes.items() if attr.get("primaryKey")),
                None,
            )
        if not self.secondary_indices:
            self.secondary_indices = [
                name
                for name, attr in self.attributes.items()
                if attr.get("unique") and not attr.get("primaryKey")
            ]

    @property
    def key(self) -> str:
        """Primary key attribute name."""
        return self.primary_key or DEFAULT_PRIMARY_KEY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectionDefinition":
        """
        Create from a collection registration mapping.

        Accepts ``identity`` (or ``tableName``), attribute definitions under
        ``definition`` (or ``attributes``), an explicit ``primaryKey`` and a
        ``config`` mapping.
        """
        identity = data.get("identity") or data.get("tableName")
        if not identity:
            raise ValueError("Collection registration requires an 'identity'")

        attributes = data.get("definition")
        if attributes is None:
            attributes = data.get("attributes", {})

        return cls(
            identity=identity,
            attributes=copy.deepcopy(attributes),
            primary_key=data.get("primaryKey"),
            config=dict(data.get("config") or {}),
        )


def normalize_attributes(attributes: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Expand shorthand attributes and drop ``autoIncrement`` flags.

    ``{"name": "string"}`` becomes ``{"name": {"type": "string"}}``.
    RethinkDB generates its own keys, so auto-increment is not supported.
    """
    normalized: Dict[str, Dict[str, Any]] = {}
    for name, attribute in attributes.items():
        if isinstance(attribute, str):
            attribute = {"type": attribute}
        else:
            attribute = dict(attribute)
        attribute.pop("autoIncrement", None)
        normalized[name] = attribute
    return normalized


@dataclass(frozen=True)
class Lookup:
    """How a where-clause reaches its rows."""

    kind: str
    value: Any = None
    index: Optional[str] = None
    remaining: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_key_lookup(self) -> bool:
        return self.kind != SCAN


def _is_key_value(value: Any) -> bool:
    return value is not None and not isinstance(value, (dict, list, tuple, set))


def select_lookup(collection: CollectionDefinition, where: Optional[Dict[str, Any]]) -> Lookup:
    """
    Decide between a key-based read and a filter scan.

    The primary key wins over unique secondary indexes. Criteria that the key
    does not cover are kept in ``remaining`` and applied as a filter.

    Args:
        collection: Registered collection definition
        where: Equality criteria

    Returns:
        Lookup describing the read path
    """
    where = dict(where or {})

    if _is_key_value(where.get(collection.key)):
        value = where.pop(collection.key)
        return Lookup(PRIMARY, value=value, index=collection.key, remaining=where)

    for index in collection.secondary_indices:
        if _is_key_value(where.get(index)):
            value = where.pop(index)
            return Lookup(SECONDARY, value=value, index=index, remaining=where)

    return Lookup(SCAN, remaining=where)
