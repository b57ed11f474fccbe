"""
Bounded asyncio connection pool for RethinkDB.

Lends one connection per query and always takes it back, whether the query
succeeded, failed, or broke the connection.

Features:
- Lazy creation up to ``max_size``, pre-warmed floor of ``min_size``
- FIFO queue of pending acquires with optional acquire timeout
- Direct hand-off of released connections to queued acquirers
- Periodic idle reaping down to ``min_size``
- Graceful drain and forced teardown

Example:
    pool = await create_pool(RethinkDBConnectionFactory(options))

    tables = await pool.run(r.table_list())

    async with pool.connection() as conn:
        await r.table("user").insert(doc).run(conn)

    await pool.close()
"""

import asyncio
import inspect
import itertools
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Optional, Set

from loguru import logger

from rethinkdb_adapter.core.exceptions import (
    AdapterError,
    ConnectionCreateError,
    PoolClosedError,
    PoolDrainTimeoutError,
    PoolExhaustedError,
    QueryError,
    TransportError,
)
from rethinkdb_adapter.core.logger import run_id_ctx

from .config import PoolConfig
from .transport import is_transport_error

ConnectionFactory = Callable[[], Awaitable[Any]]

# Sentinel for "use the configured acquire timeout"
_DEFAULT = object()

_connection_ids = itertools.count(1)


@dataclass(eq=False)
class PooledConnection:
    """Wrapper for a pooled driver connection."""

    raw: Any
    id: int = field(default_factory=lambda: next(_connection_ids))
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    use_count: int = 0
    in_use: bool = False
    closed: bool = False

    @property
    def idle_time(self) -> float:
        """Seconds since last use."""
        return time.monotonic() - self.last_used

    @property
    def age(self) -> float:
        """Total age of the connection in seconds."""
        return time.monotonic() - self.created_at

    def mark_used(self) -> None:
        """Mark connection as lent out."""
        self.last_used = time.monotonic()
        self.use_count += 1
        self.in_use = True

    def mark_returned(self) -> None:
        """Mark connection as returned to pool."""
        self.last_used = time.monotonic()
        self.in_use = False

    async def close(self) -> None:
        """Close the underlying connection."""
        if self.closed:
            return
        self.closed = True
        self.in_use = False
        try:
            result = self.raw.close()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error closing connection #{self.id}: {e}")


class ConnectionPool:
    """
    Asyncio connection pool with strict acquire/release discipline.

    Accounting invariant: ``idle + active + creating + closing <= max_size``. The idle
    and active sets are only mutated by the pool itself.
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        config: Optional[PoolConfig] = None,
        name: str = "rethinkdb",
    ):
        """
        Initialize the connection pool.

        Args:
            factory: Coroutine function returning a new driver connection
            config: Pool configuration
            name: Pool name for logging
        """
        self._factory = factory
        self.config = config or PoolConfig()
        self.name = name

        # Pool state
        self._idle: Deque[PooledConnection] = deque()
        self._in_use: Dict[int, PooledConnection] = {}
        self._waiters: Deque[asyncio.Future] = deque()
        self._creating = 0
        self._closing = 0

        self._started = False
        self._draining = False
        self._closed = False
        self._drained = asyncio.Event()

        self._reaper_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        # Stats
        self._stats = {
            "connections_created": 0,
            "connections_destroyed": 0,
            "connections_reaped": 0,
            "create_failures": 0,
            "acquires": 0,
            "releases": 0,
            "timeouts": 0,
        }

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> "ConnectionPool":
        """Pre-warm ``min_size`` connections and start the idle reaper."""
        if self._started:
            return self
        self._started = True

        await self._ensure_minimum()
        self._ensure_reaper()

        logger.info(
            f"Connection pool '{self.name}' started "
            f"(min={self.config.min_size}, max={self.config.max_size}, warm={self.size})"
        )
        return self

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting acquires and wait for every lent connection to return.

        Acquirers already queued are still served.

        Args:
            timeout: Maximum seconds to wait; waits forever when None

        Raises:
            PoolDrainTimeoutError: If connections are still lent after timeout
        """
        if not self._draining:
            self._draining = True
            logger.info(
                f"Draining connection pool '{self.name}' "
                f"(active: {self.active_count}, waiting: {self.waiting_count})"
            )
            await self._stop_reaper()

        self._check_drained()
        if timeout is None:
            await self._drained.wait()
            return

        try:
            await asyncio.wait_for(self._drained.wait(), timeout)
        except asyncio.TimeoutError:
            raise PoolDrainTimeoutError(timeout, self.active_count) from None

    async def destroy_all_now(self) -> None:
        """Close every connection, idle or lent, without waiting."""
        self._draining = True
        self._closed = True
        await self._stop_reaper()

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolClosedError())

        connections = list(self._idle) + list(self._in_use.values())
        self._idle.clear()
        self._in_use.clear()

        await asyncio.gather(*(pooled.close() for pooled in connections))
        self._stats["connections_destroyed"] += len(connections)
        self._drained.set()

        logger.info(f"Connection pool '{self.name}' destroyed ({len(connections)} connections closed)")

    async def close(self, timeout: Optional[float] = None) -> None:
        """Drain the pool, then close every connection."""
        try:
            await self.drain(timeout)
        finally:
            await self.destroy_all_now()

    # -- acquire / release ----------------------------------------------------

    async def acquire(self, timeout: Any = _DEFAULT) -> Any:
        """
        Borrow a connection from the pool.

        Args:
            timeout: Seconds to wait while queued (defaults to config.acquire_timeout,
                None waits forever)

        Returns:
            Driver connection

        Raises:
            PoolClosedError: If the pool is draining or closed
            PoolExhaustedError: If no connection became free within timeout
            ConnectionCreateError: If a new connection could not be opened
        """
        if self._draining or self._closed:
            raise PoolClosedError()
        if timeout is _DEFAULT:
            timeout = self.config.acquire_timeout

        self._ensure_reaper()

        if not self._waiters:
            if self._idle:
                pooled = self._idle.pop()
                self._checkout(pooled)
                return pooled.raw

            if self.size < self.config.max_size:
                self._creating += 1
                pooled = await self._open_connection()
                self._checkout(pooled)
                return pooled.raw

        pooled = await self._wait_for_connection(timeout)
        return pooled.raw

    def release(self, conn: Any) -> None:
        """
        Return a lent connection to the pool.

        Releasing a connection twice, or one the pool already destroyed, is
        logged and ignored.

        Args:
            conn: Connection previously returned by acquire()
        """
        pooled = self._in_use.pop(id(conn), None)
        if pooled is None:
            logger.warning(
                f"Pool '{self.name}': release of a connection that is not lent "
                f"(double release or already destroyed)"
            )
            return

        self._stats["releases"] += 1
        pooled.mark_returned()
        self._return_to_pool(pooled)

        logger.debug(
            f"Connection #{pooled.id} released "
            f"(active: {self.active_count}, idle: {self.idle_count}/{self.config.max_size})"
        )

    async def destroy(self, conn: Any) -> None:
        """
        Close a lent connection instead of returning it.

        The freed slot goes to the first queued acquirer, if any.

        Args:
            conn: Connection previously returned by acquire()
        """
        pooled = self._in_use.pop(id(conn), None)
        if pooled is None:
            logger.warning(f"Pool '{self.name}': destroy of a connection that is not lent")
            return

        self._stats["connections_destroyed"] += 1
        logger.info(f"Destroying connection #{pooled.id} (active: {self.active_count})")

        # The slot stays counted until the socket is closed
        self._closing += 1
        try:
            await pooled.close()
        finally:
            self._closing -= 1

        self._serve_waiters()
        self._check_drained()

    # -- query execution ------------------------------------------------------

    async def run(self, query: Any, timeout: Any = _DEFAULT) -> Any:
        """
        Run a query on a pooled connection.

        The connection is released on every exit path, or destroyed when the
        failure is transport-class.

        Args:
            query: ReQL term (anything with ``.run(conn)``) or coroutine function
                taking the connection
            timeout: Acquire timeout override

        Returns:
            Query result; cursors are drained to a list

        Raises:
            QueryError: Query failed, connection was released
            TransportError: Connection broke, connection was destroyed
        """
        token = run_id_ctx.set(uuid.uuid4().hex[:8])
        try:
            conn = await self.acquire(timeout)
            broken = False
            try:
                return await self._execute(query, conn)
            except Exception as e:
                if is_transport_error(e):
                    broken = True
                    logger.warning(f"Transport failure, dropping connection: {e}")
                    if isinstance(e, TransportError):
                        raise
                    raise TransportError(f"Connection transport failed: {e}", cause=repr(e)) from e
                if isinstance(e, AdapterError):
                    raise
                raise QueryError(str(e) or e.__class__.__name__, details={"cause": repr(e)}) from e
            finally:
                if broken:
                    await self.destroy(conn)
                else:
                    self.release(conn)
        finally:
            run_id_ctx.reset(token)

    @asynccontextmanager
    async def connection(self, timeout: Any = _DEFAULT) -> AsyncIterator[Any]:
        """
        Borrow a connection for several statements.

        Yields:
            Driver connection, released (or destroyed on transport failure) on exit
        """
        conn = await self.acquire(timeout)
        broken = False
        try:
            yield conn
        except Exception as e:
            broken = is_transport_error(e)
            raise
        finally:
            if broken:
                await self.destroy(conn)
            else:
                self.release(conn)

    async def _execute(self, query: Any, conn: Any) -> Any:
        if hasattr(query, "run"):
            result = query.run(conn)
        elif callable(query):
            result = query(conn)
        else:
            raise TypeError(f"Unsupported query object: {type(query).__name__}")

        if inspect.isawaitable(result):
            result = await result

        # Cursors stream over the connection, so read them before it goes back
        if hasattr(result, "__aiter__"):
            result = [item async for item in result]
        return result

    # -- idle reaping ---------------------------------------------------------

    async def reap(self) -> int:
        """
        Close idle connections older than idle_timeout, never going below min_size.

        Returns:
            Number of connections closed
        """
        if self._closed:
            return 0

        removable = self.size - self.config.min_size
        victims = []
        # Left end of the idle deque holds the least recently used connections
        for pooled in self._idle:
            if len(victims) >= removable:
                break
            if pooled.idle_time > self.config.idle_timeout:
                victims.append(pooled)

        for pooled in victims:
            self._idle.remove(pooled)

        if victims:
            logger.debug(
                f"Reaping {len(victims)} idle connections "
                f"(idle > {self.config.idle_timeout}s, size now {self.size})"
            )
            await asyncio.gather(*(pooled.close() for pooled in victims))
            self._stats["connections_reaped"] += len(victims)
            self._stats["connections_destroyed"] += len(victims)

        await self._ensure_minimum()
        return len(victims)

    async def _reap_loop(self) -> None:
        """Periodic idle reaping."""
        try:
            while True:
                await asyncio.sleep(self.config.reap_interval)
                try:
                    await self.reap()
                except Exception as e:
                    logger.error(f"Error in idle reaping: {e}")
        except asyncio.CancelledError:
            logger.debug(f"Idle reaper for pool '{self.name}' cancelled")
            raise

    def _ensure_reaper(self) -> None:
        if self._draining or self._closed:
            return
        if self._reaper_task is None or self._reaper_task.done():
            self._reaper_task = asyncio.create_task(self._reap_loop())

    async def _stop_reaper(self) -> None:
        if self._reaper_task and not self._reaper_task.done():
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
        self._reaper_task = None

    # -- internals ------------------------------------------------------------

    async def _ensure_minimum(self) -> None:
        """Open connections until the pool holds min_size."""
        while not self._draining and self.size < self.config.min_size:
            self._creating += 1
            try:
                pooled = await self._open_connection()
            except AdapterError as e:
                logger.error(f"Failed to pre-warm connection: {e}")
                return
            self._return_to_pool(pooled)

    async def _open_connection(self) -> PooledConnection:
        """Open a connection for a slot already reserved in ``_creating``."""
        try:
            raw = await self._factory()
        except asyncio.CancelledError:
            self._creating -= 1
            self._serve_waiters()
            self._check_drained()
            raise
        except Exception as e:
            self._creating -= 1
            self._stats["create_failures"] += 1
            logger.error(f"Pool '{self.name}' failed to create connection: {e}")
            # The freed slot may now be claimable by a queued acquirer
            self._serve_waiters()
            self._check_drained()
            raise ConnectionCreateError(
                f"Failed to create connection: {e}", cause=repr(e)
            ) from e

        self._creating -= 1
        pooled = PooledConnection(raw=raw)
        self._stats["connections_created"] += 1

        if self._closed:
            await pooled.close()
            raise PoolClosedError()

        logger.debug(
            f"Created connection #{pooled.id} (total: {self.size + 1}/{self.config.max_size})"
        )
        return pooled

    async def _wait_for_connection(self, timeout: Optional[float]) -> PooledConnection:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(
            f"Pool '{self.name}' exhausted, queued acquirer (waiting: {len(self._waiters)})"
        )

        try:
            if timeout is None:
                return await waiter
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            self._discard_waiter(waiter)
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Handed a connection in the same tick the timeout fired
                return waiter.result()
            self._stats["timeouts"] += 1
            logger.error(
                f"Connection pool '{self.name}' exhausted "
                f"(timeout: {timeout}s, pool_size: {self.config.max_size})"
            )
            raise PoolExhaustedError(timeout=timeout, pool_size=self.config.max_size) from None
        except asyncio.CancelledError:
            self._discard_waiter(waiter)
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                self.release(waiter.result().raw)
            raise

    def _discard_waiter(self, waiter: asyncio.Future) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        self._check_drained()

    def _checkout(self, pooled: PooledConnection) -> None:
        pooled.mark_used()
        self._in_use[id(pooled.raw)] = pooled
        self._stats["acquires"] += 1

    def _return_to_pool(self, pooled: PooledConnection) -> None:
        """Hand the connection to the first live waiter, or park it as idle."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._checkout(pooled)
            waiter.set_result(pooled)
            return

        self._idle.append(pooled)
        self._check_drained()

    def _serve_waiters(self) -> None:
        """Open replacement connections for queued acquirers while capacity allows."""
        while self._waiters and not self._closed and self.size < self.config.max_size:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._creating += 1
            self._spawn(self._create_for_waiter(waiter))

    async def _create_for_waiter(self, waiter: asyncio.Future) -> None:
        try:
            pooled = await self._open_connection()
        except AdapterError as e:
            if not waiter.done():
                waiter.set_exception(e)
            return

        if waiter.done():
            self._return_to_pool(pooled)
        else:
            self._checkout(pooled)
            waiter.set_result(pooled)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _check_drained(self) -> None:
        if not self._draining:
            return
        if self._in_use or self._creating or self._closing:
            return
        if any(not waiter.done() for waiter in self._waiters):
            return
        self._drained.set()

    # -- introspection --------------------------------------------------------

    @property
    def size(self) -> int:
        """Connections owned by the pool, including ones being opened or closed."""
        return len(self._idle) + len(self._in_use) + self._creating + self._closing

    @property
    def idle_count(self) -> int:
        """Number of idle connections."""
        return len(self._idle)

    @property
    def active_count(self) -> int:
        """Number of lent connections."""
        return len(self._in_use)

    @property
    def waiting_count(self) -> int:
        """Number of queued acquirers."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def closed(self) -> bool:
        """Whether destroy_all_now() has run."""
        return self._closed

    def get_stats(self) -> Dict[str, Any]:
        """
        Get pool statistics.

        Returns:
            Dictionary with counters and current pool occupancy
        """
        return {
            **self._stats,
            "name": self.name,
            "pool_size": self.size,
            "idle": self.idle_count,
            "active": self.active_count,
            "waiting": self.waiting_count,
            "min_size": self.config.min_size,
            "max_size": self.config.max_size,
            "draining": self._draining,
            "closed": self._closed,
        }

    async def __aenter__(self) -> "ConnectionPool":
        """Async context manager entry."""
        return await self.start()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


async def create_pool(
    factory: ConnectionFactory,
    config: Optional[PoolConfig] = None,
    name: str = "rethinkdb",
) -> ConnectionPool:
    """
    Create and start a connection pool.

    Args:
        factory: Coroutine function returning a new driver connection
        config: Pool configuration
        name: Pool name for logging

    Returns:
        Started ConnectionPool
    """
    pool = ConnectionPool(factory, config=config, name=name)
    return await pool.start()
