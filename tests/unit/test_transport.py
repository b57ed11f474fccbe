"""Tests for transport error classification."""

import asyncio

import pytest
from rethinkdb.errors import (
    ReqlDriverCompileError,
    ReqlDriverError,
    ReqlOpFailedError,
    ReqlQueryLogicError,
)

from rethinkdb_adapter.core.exceptions import QueryError, TransportError
from rethinkdb_adapter.pool import is_transport_error


@pytest.mark.parametrize(
    "error",
    [
        TransportError("gone"),
        ReqlDriverError("Connection is closed."),
        ConnectionResetError("reset"),
        BrokenPipeError("pipe"),
        EOFError(),
        OSError("socket"),
        asyncio.TimeoutError(),
    ],
)
def test_transport_errors(error):
    assert is_transport_error(error) is True


@pytest.mark.parametrize(
    "error",
    [
        QueryError("bad"),
        ReqlOpFailedError("Table `test.user` does not exist."),
        ReqlQueryLogicError("Expected type NUMBER but found STRING."),
        ReqlDriverCompileError("Cannot convert object to JSON"),
        ValueError("nope"),
        KeyError("missing"),
    ],
)
def test_query_errors(error):
    assert is_transport_error(error) is False
