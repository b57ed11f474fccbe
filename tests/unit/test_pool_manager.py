"""Tests for PoolManager and live reconfiguration."""

import asyncio

import pytest

from rethinkdb_adapter.core.exceptions import PoolClosedError
from rethinkdb_adapter.pool import PoolConfig, PoolManager


@pytest.fixture
async def manager(factory):
    """Pool manager on the fake factory."""
    manager = PoolManager(factory, PoolConfig(min_size=1, max_size=2, reap_interval=60.0))
    yield manager
    if not manager.pool.closed:
        await manager.pool.destroy_all_now()


class TestPoolManager:
    """Tests for PoolManager."""

    def test_initialization(self, factory):
        manager = PoolManager(factory, name="app")

        assert manager.pool.name == "app-1"
        assert manager.config == PoolConfig()
        assert manager.get_stats()["generation"] == 1

    @pytest.mark.asyncio
    async def test_start_and_run(self, manager, make_query, factory):
        await manager.start()

        result = await manager.run(make_query(result=[1, 2]))

        assert result == [1, 2]
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_connection_context(self, manager):
        async with manager.connection() as conn:
            assert manager.pool.active_count == 1

        assert conn.closed is False
        assert manager.pool.idle_count == 1

    @pytest.mark.asyncio
    async def test_reconfigure_swaps_pool(self, manager, factory, make_query):
        await manager.start()
        old_pool = manager.pool

        new_pool = await manager.reconfigure(
            PoolConfig(min_size=0, max_size=5, reap_interval=60.0)
        )

        assert manager.pool is new_pool
        assert new_pool is not old_pool
        assert new_pool.name == "rethinkdb-2"
        assert manager.config.max_size == 5
        assert old_pool.closed is True
        assert factory.created[0].closed is True
        assert manager.get_stats()["generation"] == 2

        assert await manager.run(make_query(result="ok")) == "ok"

    @pytest.mark.asyncio
    async def test_reconfigure_lets_in_flight_run_finish(self, manager, until):
        gate = asyncio.Event()
        started = asyncio.Event()

        async def slow(conn):
            started.set()
            await gate.wait()
            return conn.id

        in_flight = asyncio.create_task(manager.run(slow))
        await started.wait()
        old_pool = manager.pool

        reconfigure = asyncio.create_task(
            manager.reconfigure(PoolConfig(min_size=0, max_size=3, reap_interval=60.0))
        )
        await until(lambda: manager.pool is not old_pool)

        # New runs land on the new pool while the old one drains
        assert await manager.run(lambda conn: "new") == "new"
        assert manager.pool.get_stats()["connections_created"] == 1
        assert not reconfigure.done()

        gate.set()
        conn_id = await in_flight
        await reconfigure

        assert conn_id is not None
        assert old_pool.closed is True

    @pytest.mark.asyncio
    async def test_reconfigure_with_new_factory(self, manager, make_factory):
        other = make_factory()

        await manager.reconfigure(
            PoolConfig(min_size=1, max_size=2, reap_interval=60.0), factory=other
        )

        assert manager.factory is other
        assert other.calls == 1

    @pytest.mark.asyncio
    async def test_reconfigure_closed_manager(self, manager):
        await manager.close()

        with pytest.raises(PoolClosedError):
            await manager.reconfigure(PoolConfig(min_size=0))

        assert manager.get_stats()["generation"] == 1

    @pytest.mark.asyncio
    async def test_drain_and_destroy(self, manager, factory):
        await manager.start()

        await manager.drain(timeout=0.5)
        await manager.destroy_all_now()

        assert manager.pool.closed is True
        assert factory.open_connections == []

    @pytest.mark.asyncio
    async def test_async_context_manager(self, factory):
        async with PoolManager(factory, PoolConfig(min_size=1, reap_interval=60.0)) as manager:
            assert manager.pool.idle_count == 1

        assert manager.pool.closed is True
        assert factory.open_connections == []
