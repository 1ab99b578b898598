"""
Command line tool for couchentity databases.

Commands:
- list: List databases on the server
- create: Create a database, optionally storing a schema
- delete: Delete a database
- info: Database information and schema version
- schema: Print the stored schema document
- migrations: Print the migration log
- snapshot: Print a schema defined in Python, as it would be stored

Usage:
    couchentity create crm --schema myapp.schema:SCHEMA
    couchentity schema crm
    couchentity migrations crm
    couchentity snapshot --schema myapp.schema:SCHEMA > schema.json

Connection settings come from COUCHENTITY_* environment variables.

Invariants:
    - Output is deterministic JSON (sorted keys, indented)
    - Exit code 0 on success, 1 on any handled failure
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import sys
from typing import Any, List, Optional

from ..config import Settings, setup_logging
from ..database.server import Server
from ..errors import CouchEntityError
from ..schema.definitions import Schema
from ..store.base import StoreError

logger = logging.getLogger(__name__)


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True, default=str)


def load_schema(path: str) -> Schema:
    """Import a Schema from ``"package.module:attribute"``.

    Raises:
        ValueError: If the path is malformed or the attribute is not a Schema
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Schema path must look like 'package.module:attribute', got '{path}'")
    module = importlib.import_module(module_name)
    schema = getattr(module, attribute)
    if not isinstance(schema, Schema):
        raise ValueError(f"{path} is not a Schema")
    return schema


class DatabaseCLI:
    """CLI commands bound to a server.

    Example:
        >>> cli = DatabaseCLI(server)
        >>> print(await cli.schema("crm"))
    """

    def __init__(self, server: Server) -> None:
        self.server = server

    async def list(self) -> str:
        return _dump(await self.server.list())

    async def create(self, name: str, schema: Optional[Schema] = None) -> str:
        await self.server.create(name, schema)
        return f"Database {name} created" + (f" with schema version {schema.version}" if schema else "")

    async def delete(self, name: str) -> str:
        await self.server.delete(name)
        return f"Database {name} deleted"

    async def info(self, name: str) -> str:
        database = await self.server.use(name)
        return _dump(await database.get_info())

    async def schema(self, name: str) -> str:
        database = await self.server.use(name)
        return _dump(await database.get_schema())

    async def migrations(self, name: str) -> str:
        database = await self.server.use(name)
        return _dump(await database.get_migration_log())

    @staticmethod
    def snapshot(schema: Schema) -> str:
        return _dump({"fingerprint": schema.fingerprint(), **schema.to_dict()})

    async def execute(self, args: argparse.Namespace) -> int:
        """Run a parsed command, printing its output."""
        try:
            if args.command == "list":
                output = await self.list()
            elif args.command == "create":
                output = await self.create(args.database, load_schema(args.schema) if args.schema else None)
            elif args.command == "delete":
                output = await self.delete(args.database)
            elif args.command == "info":
                output = await self.info(args.database)
            elif args.command == "schema":
                output = await self.schema(args.database)
            elif args.command == "migrations":
                output = await self.migrations(args.database)
            else:
                output = self.snapshot(load_schema(args.schema))
        except (CouchEntityError, StoreError, ValueError, ImportError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(output)
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="couchentity", description="couchentity database tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List databases")

    create_parser = subparsers.add_parser("create", help="Create a database")
    create_parser.add_argument("database")
    create_parser.add_argument("--schema", help="Schema to store, as 'package.module:attribute'")

    for command, help_text in (
        ("delete", "Delete a database"),
        ("info", "Show database information"),
        ("schema", "Print the stored schema"),
        ("migrations", "Print the migration log"),
    ):
        subparsers.add_parser(command, help=help_text).add_argument("database")

    snapshot_parser = subparsers.add_parser("snapshot", help="Print a Python schema as stored JSON")
    snapshot_parser.add_argument("--schema", required=True, help="Schema as 'package.module:attribute'")
    return parser


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    async with Server.from_settings(settings) as server:
        return await DatabaseCLI(server).execute(args)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(settings)
    sys.exit(asyncio.run(_run(args, settings)))


if __name__ == "__main__":
    main()
