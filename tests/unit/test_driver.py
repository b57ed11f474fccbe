"""Tests for the RethinkDB connection factory."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rethinkdb_adapter.pool import driver
from rethinkdb_adapter.pool.driver import RethinkDBConnectionFactory, connect_kwargs


@pytest.fixture
def mock_r(monkeypatch):
    """Replace the driver's ``r`` with a mock."""
    mock = MagicMock()
    mock.connect = AsyncMock(return_value=MagicMock(name="connection"))
    monkeypatch.setattr(driver, "r", mock)
    return mock


class TestConnectKwargs:
    """Tests for connect_kwargs."""

    def test_defaults(self):
        assert connect_kwargs({}) == {"host": "localhost", "port": 28015, "db": "test"}

    def test_pool_and_unknown_options_dropped(self):
        kwargs = connect_kwargs({"host": "db", "min": 1, "max": 5, "migrate": "safe"})

        assert kwargs == {"host": "db", "port": 28015, "db": "test"}

    def test_empty_values_dropped(self):
        kwargs = connect_kwargs({"user": "", "password": None, "timeout": 5})

        assert "user" not in kwargs
        assert "password" not in kwargs
        assert kwargs["timeout"] == 5

    @pytest.mark.parametrize("key", ["auth_key", "authKey"])
    def test_auth_key_becomes_password(self, key):
        assert connect_kwargs({key: "secret"})["password"] == "secret"

    def test_password_wins_over_auth_key(self):
        assert connect_kwargs({"authKey": "old", "password": "new"})["password"] == "new"


class TestRethinkDBConnectionFactory:
    """Tests for RethinkDBConnectionFactory."""

    @pytest.mark.asyncio
    async def test_connect(self, mock_r):
        factory = RethinkDBConnectionFactory({"host": "db.local", "port": 28016, "db": "app"})

        conn = await factory()

        assert conn is mock_r.connect.return_value
        mock_r.connect.assert_awaited_once_with(host="db.local", port=28016, db="app")
        mock_r.set_loop_type.assert_called_once_with("asyncio")

    @pytest.mark.asyncio
    async def test_loop_type_set_on_construction(self, mock_r):
        factory = RethinkDBConnectionFactory()

        mock_r.set_loop_type.assert_called_once_with("asyncio")
        mock_r.connect.assert_not_called()

        await factory()
        await factory()

        assert mock_r.connect.await_count == 2
        mock_r.set_loop_type.assert_called_once()

    def test_each_factory_sets_loop_type(self, mock_r):
        RethinkDBConnectionFactory()
        RethinkDBConnectionFactory({"host": "db.other"})

        assert mock_r.set_loop_type.call_count == 2

    @pytest.mark.asyncio
    async def test_connect_failure_propagates(self, mock_r):
        mock_r.connect.side_effect = ConnectionRefusedError("refused")
        factory = RethinkDBConnectionFactory()

        with pytest.raises(ConnectionRefusedError):
            await factory()

    def test_repr_hides_password(self):
        factory = RethinkDBConnectionFactory({"host": "db", "password": "s3cret"})

        assert repr(factory) == "RethinkDBConnectionFactory(db:28015/test)"
        assert "s3cret" not in repr(factory)

    @pytest.mark.asyncio
    async def test_password_not_logged(self, mock_r):
        factory = RethinkDBConnectionFactory({"password": "s3cret"})

        with patch.object(driver, "logger") as mock_logger:
            await factory()

        logged = " ".join(str(call) for call in mock_logger.debug.call_args_list)
        assert "s3cret" not in logged
        assert "********" in logged
