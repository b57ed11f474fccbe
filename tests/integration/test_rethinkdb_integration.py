"""Integration tests against a running RethinkDB server."""

import asyncio
import os
import uuid

import pytest
import pytest_asyncio
from rethinkdb import r

from rethinkdb_adapter.adapter import RethinkDBAdapter
from rethinkdb_adapter.core.exceptions import AdapterError, TransportError, UniqueConstraintError

TEST_HOST = os.getenv("RETHINKDB_TEST_HOST", "localhost")
TEST_PORT = int(os.getenv("RETHINKDB_TEST_PORT", "28015"))
TEST_DB = os.getenv("RETHINKDB_TEST_DB", "test")


@pytest_asyncio.fixture
async def adapter():
    """Adapter connected to the test server; skips when none is reachable."""
    adapter = RethinkDBAdapter(
        {
            "host": TEST_HOST,
            "port": TEST_PORT,
            "db": TEST_DB,
            "timeout": 2,
            "min": 1,
            "max": 3,
            "acquireTimeout": 5,
        }
    )

    try:
        await adapter.run(r.table_list())
    except AdapterError as e:
        await adapter.destroy_all_now()
        pytest.skip(f"RethinkDB server not available: {e}")

    yield adapter
    await adapter.teardown()


@pytest_asyncio.fixture
async def users(adapter):
    """Registered user collection on a throwaway table."""
    table = f"adapter_it_{uuid.uuid4().hex[:8]}"
    await adapter.register_collection(
        {
            "identity": table,
            "definition": {
                "email": {"type": "email", "unique": True},
                "name": "string",
                "age": "integer",
            },
        }
    )
    yield table
    await adapter.drop(table)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_register_creates_table_and_index(adapter, users):
    """Test that registration creates the table and its unique index."""
    assert users in await adapter.run(r.table_list())
    assert "email" in await adapter.run(r.table(users).index_list())


@pytest.mark.integration
@pytest.mark.asyncio
async def test_record_lifecycle(adapter, users):
    """Test create, find, update, count and destroy on a real table."""
    ann = await adapter.create(users, {"email": "ann@example.com", "name": "Ann", "age": 31})
    await adapter.create_each(
        users,
        [
            {"email": "bo@example.com", "name": "Bo", "age": 25},
            {"email": "cy@example.com", "name": "Cy", "age": 40},
        ],
    )

    assert ann["id"]
    assert await adapter.find(users, {"where": {"id": ann["id"]}}) == [ann]
    assert await adapter.find(users, {"where": {"email": "bo@example.com"}})
    assert await adapter.count(users) == 3

    oldest_first = await adapter.find(users, {"sort": {"age": -1}, "limit": 2})
    assert [row["name"] for row in oldest_first] == ["Cy", "Ann"]

    updated = await adapter.update(users, {"where": {"id": ann["id"]}}, {"age": 32})
    assert updated[0]["age"] == 32

    deleted = await adapter.destroy(users, {"where": {"name": "Bo"}})
    assert [row["email"] for row in deleted] == ["bo@example.com"]
    assert await adapter.count(users) == 2


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unique_constraint(adapter, users):
    """Test duplicate unique values are rejected before insert."""
    await adapter.create(users, {"email": "dup@example.com", "name": "One"})

    with pytest.raises(UniqueConstraintError):
        await adapter.create(users, {"email": "dup@example.com", "name": "Two"})

    assert await adapter.count(users, {"where": {"email": "dup@example.com"}}) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_broken_connection_is_destroyed(adapter):
    """Test a connection closed under a query is dropped from the pool."""

    async def close_then_query(conn):
        await conn.close()
        return await r.table_list().run(conn)

    before = adapter.pool_manager.get_stats()["connections_destroyed"]

    with pytest.raises(TransportError):
        await adapter.run(close_then_query)

    assert adapter.pool_manager.get_stats()["connections_destroyed"] == before + 1
    assert isinstance(await adapter.run(r.table_list()), list)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_concurrent_queries_share_small_pool(adapter):
    """Test many concurrent queries never open more than max connections."""
    results = await asyncio.gather(*(adapter.run(r.expr(i) + 1) for i in range(30)))

    assert results == [i + 1 for i in range(30)]
    assert adapter.pool_manager.get_stats()["connections_created"] <= 3
