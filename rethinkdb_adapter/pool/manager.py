"""Holder of the active connection pool for one adapter configuration."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from loguru import logger

from rethinkdb_adapter.core.exceptions import PoolClosedError

from .config import PoolConfig
from .connection_pool import ConnectionFactory, ConnectionPool


class PoolManager:
    """
    Owns the pool reference used by every query of an adapter.

    ``reconfigure()`` builds a new pool and swaps the reference before draining
    the old one, so new runs never land on a pool that is shutting down while
    in-flight runs finish where they started.

    Example:
        manager = PoolManager(RethinkDBConnectionFactory(options), PoolConfig(max_size=5))
        await manager.start()

        tables = await manager.run(r.table_list())

        await manager.reconfigure(PoolConfig(max_size=20))
        await manager.close()
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        config: Optional[PoolConfig] = None,
        name: str = "rethinkdb",
    ):
        """
        Initialize pool manager.

        Args:
            factory: Coroutine function returning a new driver connection
            config: Pool configuration
            name: Pool name for logging
        """
        self.factory = factory
        self.name = name
        self._generation = 1
        self._pool = ConnectionPool(factory, config=config, name=f"{name}-{self._generation}")
        self._reconfigure_lock = asyncio.Lock()

    @property
    def pool(self) -> ConnectionPool:
        """The pool new queries are sent to."""
        return self._pool

    @property
    def config(self) -> PoolConfig:
        """Configuration of the active pool."""
        return self._pool.config

    async def start(self) -> "PoolManager":
        """Pre-warm the active pool."""
        await self._pool.start()
        return self

    async def run(self, query: Any, **kwargs: Any) -> Any:
        """Run a query on the active pool."""
        return await self._pool.run(query, **kwargs)

    @asynccontextmanager
    async def connection(self, **kwargs: Any) -> AsyncIterator[Any]:
        """Borrow a connection from the active pool."""
        async with self._pool.connection(**kwargs) as conn:
            yield conn

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Drain the active pool."""
        await self._pool.drain(timeout)

    async def destroy_all_now(self) -> None:
        """Close every connection of the active pool."""
        await self._pool.destroy_all_now()

    async def close(self, timeout: Optional[float] = None) -> None:
        """Drain, then close every connection."""
        await self._pool.close(timeout)

    async def reconfigure(
        self,
        config: PoolConfig,
        factory: Optional[ConnectionFactory] = None,
        drain_timeout: Optional[float] = None,
    ) -> ConnectionPool:
        """
        Replace the active pool with one built from ``config``.

        Args:
            config: New pool configuration
            factory: New connection factory (keeps the current one when None)
            drain_timeout: Maximum seconds to wait for the old pool to drain

        Returns:
            The new active pool
        """
        async with self._reconfigure_lock:
            old_pool = self._pool
            if old_pool.closed:
                raise PoolClosedError("Cannot reconfigure a closed pool manager")

            if factory is not None:
                self.factory = factory
            self._generation += 1
            new_pool = ConnectionPool(
                self.factory, config=config, name=f"{self.name}-{self._generation}"
            )
            await new_pool.start()
            self._pool = new_pool

            logger.info(
                f"Pool '{self.name}' reconfigured "
                f"(min={config.min_size}, max={config.max_size}), draining '{old_pool.name}'"
            )
            await old_pool.close(drain_timeout)
            return new_pool

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics of the active pool."""
        return {**self._pool.get_stats(), "generation": self._generation}

    async def __aenter__(self) -> "PoolManager":
        """Async context manager entry."""
        return await self.start()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
