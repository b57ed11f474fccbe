"""Collection adapter translating CRUD calls into ReQL run through the pool."""

import asyncio
from typing import Any, Dict, List, Optional, Union

from loguru import logger
from rethinkdb import r

from rethinkdb_adapter.core.exceptions import (
    CollectionNotRegisteredError,
    ConfigurationError,
    QueryError,
    TableOperationError,
    UniqueConstraintError,
)
from rethinkdb_adapter.pool.config import PoolConfig
from rethinkdb_adapter.pool.connection_pool import ConnectionFactory
from rethinkdb_adapter.pool.driver import RethinkDBConnectionFactory
from rethinkdb_adapter.pool.manager import PoolManager

from .collection import PRIMARY, SCAN, CollectionDefinition, Lookup, select_lookup

DEFAULTS: Dict[str, Any] = {
    # drop  => drop schema and data, then recreate it
    # alter => drop/add columns as necessary
    # safe  => don't change anything
    "migrate": "alter",
}

Criteria = Optional[Dict[str, Any]]


def _validate_options(options: Any) -> None:
    prefix = "RethinkDBAdapter.configure(options, strict): options"
    if not isinstance(options, dict):
        raise ConfigurationError(f"{prefix}: must be a dict")
    if "migrate" in options and not isinstance(options["migrate"], str):
        raise ConfigurationError(f"{prefix}.migrate: must be a string")


def _check_write(result: Dict[str, Any], default_message: str) -> None:
    if result.get("errors"):
        raise QueryError(
            result.get("first_error") or default_message,
            details={"errors": result.get("errors")},
        )


def _counter(result: Dict[str, Any], *keys: str) -> int:
    """Read a counter from a write result, accepting old and new driver field names."""
    for key in keys:
        if key in result:
            return result[key]
    return 0


def _changed(result: Dict[str, Any], side: str) -> List[Dict[str, Any]]:
    return [change[side] for change in result.get("changes", []) if change.get(side) is not None]


class RethinkDBAdapter:
    """
    Adapter exposing collection CRUD over a pooled RethinkDB connection set.

    Every query goes through one ``PoolManager`` owned by the adapter instance.

    Example:
        adapter = RethinkDBAdapter({"host": "127.0.0.1", "port": 28015, "db": "test"})
        await adapter.register_collection({
            "identity": "user",
            "definition": {"email": {"type": "email", "unique": True}},
        })
        user = await adapter.create("user", {"email": "a@example.com"})
        await adapter.teardown()
    """

    syncable = True

    def __init__(
        self,
        options: Optional[Dict[str, Any]] = None,
        factory: Optional[ConnectionFactory] = None,
    ):
        """
        Initialize the adapter.

        Args:
            options: Connection and pool options (host, port, db, user, password,
                min, max, idleTimeout, reapInterval, acquireTimeout, migrate)
            factory: Connection factory override; defaults to the RethinkDB driver
        """
        options = {} if options is None else options
        _validate_options(options)
        options = dict(options)

        self.options = options
        self.defaults = {**DEFAULTS, **{k: v for k, v in options.items() if k in DEFAULTS}}
        self._collections: Dict[str, CollectionDefinition] = {}
        self._custom_factory = factory
        self._manager = PoolManager(
            factory or RethinkDBConnectionFactory(options),
            PoolConfig.from_dict(options),
            name="rethinkdb",
        )

    @classmethod
    def from_settings(
        cls, settings: Any, factory: Optional[ConnectionFactory] = None
    ) -> "RethinkDBAdapter":
        """
        Build an adapter from ``AdapterSettings``.

        Args:
            settings: AdapterSettings instance
            factory: Connection factory override

        Returns:
            RethinkDBAdapter instance
        """
        pool_config = settings.to_pool_config()
        options = {
            **settings.connection_options(),
            "min": pool_config.min_size,
            "max": pool_config.max_size,
            "idleTimeout": pool_config.idle_timeout,
            "reapInterval": pool_config.reap_interval,
            "acquireTimeout": pool_config.acquire_timeout,
            "migrate": settings.migrate,
        }
        return cls(options, factory=factory)

    # -- definitions ----------------------------------------------------------

    def get_def(self, collection_name: str) -> Optional[CollectionDefinition]:
        """Get a registered collection definition."""
        return self._collections.get(collection_name)

    def set_def(self, collection_name: str, definition: CollectionDefinition) -> None:
        """Store a collection definition."""
        self._collections[collection_name] = definition

    def definitions(self) -> Dict[str, CollectionDefinition]:
        """All registered collection definitions."""
        return self._collections

    def _require(self, collection_name: str) -> CollectionDefinition:
        collection = self.get_def(collection_name)
        if collection is None:
            raise CollectionNotRegisteredError(collection_name)
        return collection

    # -- pool access ----------------------------------------------------------

    @property
    def pool_manager(self) -> PoolManager:
        """Pool manager owned by this adapter."""
        return self._manager

    async def run(self, query: Any) -> Any:
        """Run an arbitrary ReQL query on a pooled connection."""
        return await self._manager.run(query)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every lent connection to return."""
        await self._manager.drain(timeout)

    async def destroy_all_now(self) -> None:
        """Close every pooled connection."""
        await self._manager.destroy_all_now()

    async def configure(self, options: Dict[str, Any], strict: bool = False) -> None:
        """
        Apply new options and rebuild the connection pool.

        Args:
            options: Configuration options for this instance
            strict: Reset configuration to the defaults before applying the options

        Raises:
            ConfigurationError: If options are invalid
        """
        _validate_options(options)

        if strict:
            self.options = dict(options)
            self.defaults = dict(DEFAULTS)
            pool_config = PoolConfig.from_dict(self.options)
        else:
            self.options = {**self.options, **options}
            pool_config = self._manager.config.merge(options)

        if "migrate" in options:
            self.defaults["migrate"] = options["migrate"]

        factory = self._custom_factory or RethinkDBConnectionFactory(self.options)
        await self._manager.reconfigure(pool_config, factory=factory)

    async def teardown(self) -> None:
        """Drain, then close all connections."""
        await self._manager.drain()
        await self._manager.destroy_all_now()
        logger.info("RethinkDB adapter torn down")

    # -- schema ---------------------------------------------------------------

    async def register_collection(
        self, collection: Union[Dict[str, Any], CollectionDefinition]
    ) -> CollectionDefinition:
        """
        Register a collection and create its table if it doesn't exist.

        Args:
            collection: Registration mapping or definition

        Returns:
            The stored collection definition
        """
        if not isinstance(collection, CollectionDefinition):
            collection = CollectionDefinition.from_dict(collection)

        existing = self.get_def(collection.identity)
        if existing is None:
            self.set_def(collection.identity, collection)
        else:
            collection = existing

        await self.define(collection.identity, collection)
        return collection

    async def define(
        self,
        collection_name: str,
        definition: Union[Dict[str, Any], CollectionDefinition, None] = None,
    ) -> CollectionDefinition:
        """
        Create the table and unique secondary indexes for a collection.

        Args:
            collection_name: Name of collection whose table is to be created
            definition: Attribute definitions; the registered ones are used when None

        Returns:
            Collection definition
        """
        if isinstance(definition, CollectionDefinition):
            collection = definition
        elif definition is not None:
            registered = self.get_def(collection_name)
            collection = CollectionDefinition(
                identity=collection_name,
                attributes=definition,
                primary_key=registered.primary_key if registered else None,
                config=registered.config if registered else {},
            )
        else:
            collection = self._require(collection_name)
        self.set_def(collection_name, collection)

        tables = await self.run(r.table_list())
        if collection_name not in tables:
            result = await self.run(r.table_create(collection_name, primary_key=collection.key))
            if _counter(result, "tables_created", "created") != 1:
                raise TableOperationError("create", collection_name)
            logger.info(f"Created table '{collection_name}' (primary key: {collection.key})")

        if collection.secondary_indices:
            table = r.table(collection_name)
            existing = await self.run(table.index_list())
            # Indexes are created one at a time
            for index in collection.secondary_indices:
                if index not in existing:
                    await self.run(table.index_create(index))
                    logger.info(f"Created secondary index '{collection_name}.{index}'")
            await self.run(table.index_wait())

        return collection

    def describe(self, collection_name: str) -> Optional[Dict[str, Dict[str, Any]]]:
        """
        Return the schema of the given collection.

        Returns:
            Attribute definitions, or None when the collection has none
        """
        collection = self._require(collection_name)
        return collection.attributes or None

    async def drop(self, collection_name: str) -> None:
        """Drop the table for the given collection if it exists."""
        tables = await self.run(r.table_list())
        if collection_name not in tables:
            return

        result = await self.run(r.table_drop(collection_name))
        if _counter(result, "tables_dropped", "dropped") != 1:
            raise TableOperationError("drop", collection_name)
        logger.info(f"Dropped table '{collection_name}'")

    # -- records --------------------------------------------------------------

    async def create(self, collection_name: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new record after checking every unique attribute.

        The checks and the insert run one after another; they are not atomic.

        Returns:
            The stored record

        Raises:
            UniqueConstraintError: If a unique attribute value is already taken
            QueryError: If the insert reports errors
        """
        collection = self._require(collection_name)
        table = r.table(collection_name)

        for attribute in collection.secondary_indices:
            value = values.get(attribute)
            if value is None:
                continue
            taken = await self.run(table.get_all(value, index=attribute).count())
            if taken > 0:
                raise UniqueConstraintError(attribute, value)

        result = await self.run(table.insert(values, return_changes=True))
        _check_write(result, "insert failed")
        created = _changed(result, "new_val")
        return created[0] if created else dict(values)

    async def create_each(
        self, collection_name: str, values_list: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Insert several records with one query and return them."""
        self._require(collection_name)
        if not values_list:
            return []

        result = await self.run(r.table(collection_name).insert(values_list, return_changes=True))
        _check_write(result, "insert failed")
        return _changed(result, "new_val")

    async def find(self, collection_name: str, criteria: Criteria = None) -> List[Dict[str, Any]]:
        """
        Find records matching criteria.

        Args:
            collection_name: Name of the collection to search
            criteria: ``where`` equality criteria plus optional ``sort``, ``skip``, ``limit``

        Returns:
            Matching records
        """
        collection = self._require(collection_name)
        criteria = criteria or {}
        lookup = select_lookup(collection, criteria.get("where"))

        if lookup.kind == PRIMARY and not lookup.remaining and not _paginated(criteria):
            document = await self.run(r.table(collection_name).get(lookup.value))
            return [document] if document is not None else []

        query = _paginate(self._selection(collection_name, lookup), criteria)
        return list(await self.run(query))

    async def count(self, collection_name: str, criteria: Criteria = None) -> int:
        """Return the number of records that meet the given criteria."""
        collection = self._require(collection_name)
        criteria = criteria or {}
        lookup = select_lookup(collection, criteria.get("where"))
        return await self.run(self._selection(collection_name, lookup).count())

    async def update(
        self,
        collection_name: str,
        criteria: Criteria,
        values: Union[Dict[str, Any], List[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """
        Update records matching criteria.

        A list of value mappings is applied concurrently, one update per mapping.

        Returns:
            Updated records
        """
        if isinstance(values, list):
            batches = await asyncio.gather(
                *(self.update(collection_name, criteria, value) for value in values)
            )
            return [record for batch in batches for record in batch]

        collection = self._require(collection_name)
        lookup = select_lookup(collection, (criteria or {}).get("where"))

        if lookup.kind == PRIMARY and not lookup.remaining:
            selection = r.table(collection_name).get(lookup.value)
        else:
            selection = self._selection(collection_name, lookup)

        result = await self.run(selection.update(values, return_changes="always"))
        _check_write(result, "update failed")
        return _changed(result, "new_val")

    async def destroy(self, collection_name: str, criteria: Criteria = None) -> List[Dict[str, Any]]:
        """
        Delete records matching criteria; everything when criteria is empty.

        Returns:
            Deleted records
        """
        collection = self._require(collection_name)
        lookup = select_lookup(collection, (criteria or {}).get("where"))

        if lookup.kind == PRIMARY and not lookup.remaining:
            selection = r.table(collection_name).get(lookup.value)
        else:
            selection = self._selection(collection_name, lookup)

        result = await self.run(selection.delete(return_changes=True))
        _check_write(result, "delete failed")
        return _changed(result, "old_val")

    def _selection(self, collection_name: str, lookup: Lookup) -> Any:
        table = r.table(collection_name)
        if lookup.kind == SCAN:
            selection = table
        else:
            selection = table.get_all(lookup.value, index=lookup.index)
        if lookup.remaining:
            selection = selection.filter(lookup.remaining)
        return selection


def _paginated(criteria: Dict[str, Any]) -> bool:
    return any(criteria.get(key) is not None for key in ("sort", "skip", "limit"))


def _sort_keys(sort: Union[str, Dict[str, Any]]) -> List[Any]:
    if isinstance(sort, str):
        parts = sort.split()
        sort = {parts[0]: parts[1] if len(parts) > 1 else "asc"}

    keys = []
    for attribute, direction in sort.items():
        descending = direction in (-1, "-1") or str(direction).lower() == "desc"
        keys.append(r.desc(attribute) if descending else r.asc(attribute))
    return keys


def _paginate(query: Any, criteria: Dict[str, Any]) -> Any:
    if criteria.get("sort"):
        query = query.order_by(*_sort_keys(criteria["sort"]))
    if criteria.get("skip"):
        query = query.skip(criteria["skip"])
    if criteria.get("limit") is not None:
        query = query.limit(criteria["limit"])
    return query
