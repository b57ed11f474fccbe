#!/usr/bin/env python3
"""
rethinkdb-adapter - example entry point.

Connects through the adapter's connection pool, lists the tables of the
configured database and tears the pool down again.
"""

import argparse
import asyncio
import sys
from typing import Any, Dict

from loguru import logger
from pydantic import ValidationError
from rethinkdb import r

from rethinkdb_adapter.adapter import RethinkDBAdapter
from rethinkdb_adapter.core.exceptions import AdapterError
from rethinkdb_adapter.core.logger import setup_structured_logging
from rethinkdb_adapter.core.settings import get_settings


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect command line overrides that were actually given."""
    overrides = {"host": args.host, "port": args.port, "db": args.db}
    return {key: value for key, value in overrides.items() if value is not None}


async def list_tables(adapter: RethinkDBAdapter) -> None:
    """Run ``r.table_list()`` on a pooled connection and print the result."""
    try:
        tables = await adapter.run(r.table_list())
        print("\n".join(tables) if tables else "(no tables)")
        logger.info(f"Pool stats: {adapter.pool_manager.get_stats()}")
    finally:
        await adapter.teardown()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="List RethinkDB tables through the pooled adapter")
    parser.add_argument("--host", default=None, help="RethinkDB host (RETHINKDB_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Driver port (RETHINKDB_PORT)")
    parser.add_argument("--db", default=None, help="Database name (RETHINKDB_DB)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_structured_logging(args.log_level or settings.log_level)

    adapter = RethinkDBAdapter.from_settings(settings)
    overrides = build_overrides(args)

    try:
        if overrides:
            asyncio.run(_configure_and_list(adapter, overrides))
        else:
            asyncio.run(list_tables(adapter))
    except AdapterError as e:
        logger.error(f"{e.__class__.__name__}: {e.message}")
        sys.exit(1)


async def _configure_and_list(adapter: RethinkDBAdapter, overrides: Dict[str, Any]) -> None:
    await adapter.configure(overrides)
    await list_tables(adapter)


if __name__ == "__main__":
    main()
