"""Pytest configuration and common fixtures."""

import asyncio
import itertools
import os
import sys
import warnings
from pathlib import Path
from typing import Any, Callable, List, Optional, Set

from dotenv import load_dotenv

# Try to load test-specific environment file if it exists
test_env_file = Path(__file__).parent / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file)

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from rethinkdb_adapter.core.settings import reset_settings
from rethinkdb_adapter.pool import ConnectionPool, PoolConfig

_fake_ids = itertools.count(1)


class FakeConnection:
    """Stand-in for a driver connection."""

    def __init__(self, close_delay: float = 0.0):
        self.id = next(_fake_ids)
        self.closed = False
        self.close_calls = 0
        self.close_delay = close_delay

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True

    def __repr__(self) -> str:
        return f"FakeConnection({self.id})"


class FakeFactory:
    """Connection factory that records what it opened and can fail on demand."""

    def __init__(
        self,
        fail_on: Optional[Set[int]] = None,
        delay: float = 0.0,
        close_delay: float = 0.0,
    ):
        self.fail_on = set(fail_on or ())
        self.delay = delay
        self.close_delay = close_delay
        self.calls = 0
        self.created: List[FakeConnection] = []
        self.peak_open = 0

    async def __call__(self) -> FakeConnection:
        self.calls += 1
        call = self.calls
        if self.delay:
            await asyncio.sleep(self.delay)
        if call in self.fail_on:
            raise ConnectionRefusedError(f"connect attempt {call} refused")
        conn = FakeConnection(self.close_delay)
        self.created.append(conn)
        self.peak_open = max(self.peak_open, len(self.open_connections))
        return conn

    @property
    def open_connections(self) -> List[FakeConnection]:
        return [conn for conn in self.created if not conn.closed]


class FakeQuery:
    """Object with a ReQL-style ``run(conn)`` coroutine."""

    def __init__(self, result: Any = None, error: Optional[BaseException] = None):
        self.result = result
        self.error = error
        self.connections: List[Any] = []

    async def run(self, conn: Any) -> Any:
        self.connections.append(conn)
        if self.error is not None:
            raise self.error
        return self.result


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


def pytest_configure(config):
    """Configure pytest environment before tests run."""
    warnings.filterwarnings("ignore", message="coroutine.*was never awaited")


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Isolate settings from the developer's environment."""
    for name in list(os.environ):
        if name.upper().startswith("RETHINKDB_"):
            monkeypatch.delenv(name, raising=False)

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def make_factory():
    """FakeFactory class, for tests that need failures or delays."""
    return FakeFactory


@pytest.fixture
def factory() -> FakeFactory:
    """Fresh fake connection factory."""
    return FakeFactory()


@pytest.fixture
def make_query():
    """FakeQuery class."""
    return FakeQuery


@pytest.fixture
def until():
    """The wait_until helper."""
    return wait_until


@pytest.fixture
async def make_pool(factory):
    """Build pools (on the shared fake factory by default) and destroy them after the test."""
    pools: List[ConnectionPool] = []

    def _make(pool_factory: Optional[FakeFactory] = None, **config: Any) -> ConnectionPool:
        config.setdefault("min_size", 0)
        config.setdefault("reap_interval", 60.0)
        pool = ConnectionPool(pool_factory or factory, PoolConfig(**config), name="test")
        pools.append(pool)
        return pool

    yield _make

    for pool in pools:
        if not pool.closed:
            await pool.destroy_all_now()
