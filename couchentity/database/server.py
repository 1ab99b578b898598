"""
Server: creates, opens and deletes schema-aware databases.

Every database created with a schema carries two system documents:

- ``$/schema``: the stored schema (version, fingerprint, namespaces,
  relationships)
- ``$/migrations``: the append-only migration log, starting with an
  ``init`` entry

Invariants:
    - Database names match ``^[a-z][a-z0-9_$()+/-]*$``
    - use() never writes the schema document; only create() and migrations do

How to change safely:
    - The server talks to storage only through the StoreServer protocol;
      keep CouchDB specifics in couchentity.store.couchdb
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..errors import SchemaError
from ..model.tools import now_millis
from ..schema.definitions import MIGRATIONS_DOC_ID, SCHEMA_DOC_ID, Schema
from ..security import Security
from ..store.base import Document, DocumentNotFoundError, StoreServer
from ..store.couchdb import CouchDbStoreServer
from .database import Database

logger = logging.getLogger(__name__)

DATABASE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_$()+/-]*$")


class Server:
    """Entry point for working with databases.

    Example:
        >>> async with Server.from_settings(Settings()) as server:
        ...     await server.create("crm", schema)
        ...     db = await server.use("crm", schema)
        ...     company = db.service("crm", "company").create()
    """

    def __init__(self, store_server: StoreServer, security: Optional[Security] = None) -> None:
        self.store_server = store_server
        self.security = security if security is not None else Security()

    @classmethod
    def from_settings(cls, settings: Settings) -> Server:
        store_server = CouchDbStoreServer(
            settings.endpoint,
            username=settings.username,
            password=settings.password,
            token=settings.token,
            timeout=settings.request_timeout,
        )
        return cls(store_server, Security.from_settings(settings))

    async def __aenter__(self) -> Server:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def is_up(self) -> bool:
        return await self.store_server.is_up()

    async def info(self) -> Document:
        return await self.store_server.info()

    async def list(self) -> List[str]:
        return await self.store_server.list_databases()

    async def exists(self, name: str) -> bool:
        return name in await self.store_server.list_databases()

    async def create(self, name: str, schema: Optional[Schema] = None) -> None:
        """Create a database, storing its schema and an ``init`` log entry.

        Raises:
            SchemaError: If the name is invalid
            DocumentConflictError: If the database already exists
        """
        if not DATABASE_NAME_PATTERN.match(name):
            raise SchemaError(f"Invalid database name '{name}'", name=name)

        await self.store_server.create_database(name)
        if schema is not None:
            store = await self.store_server.open_database(name)
            await store.put(schema.to_document())
            await store.put({
                "_id": MIGRATIONS_DOC_ID,
                "log": [{"when": now_millis(), "type": "init", "version": schema.version}],
            })
        logger.info(
            f"Created database {name}",
            extra={"db": name, "schema_version": schema.version if schema else None},
        )

    async def delete(self, name: str) -> None:
        await self.store_server.delete_database(name)
        logger.info(f"Deleted database {name}", extra={"db": name})

    async def use(
        self,
        name: str,
        schema: Optional[Schema] = None,
        types: Optional[Dict[str, Any]] = None,
    ) -> Database:
        """Open a database and import its schema.

        Args:
            name: Database name
            schema: Schema to import; defaults to the stored declarative schema
            types: Custom property types, when rebuilding the stored schema

        Raises:
            DocumentNotFoundError: If the database does not exist
            SchemaError: If no schema is given and none is stored
        """
        store = await self.store_server.open_database(name)
        try:
            stored: Optional[Document] = await store.get(SCHEMA_DOC_ID)
        except DocumentNotFoundError:
            stored = None

        if schema is None:
            if stored is None:
                raise SchemaError(f"Database {name} has no stored schema", name=name)
            schema = Schema.from_dict(stored, types=types)

        version = stored.get("version", schema.version) if stored else schema.version
        if version != schema.version:
            logger.warning(
                f"Database {name} is at schema version {version}, given schema is version {schema.version}",
                extra={"db": name},
            )

        database = Database(name, store, security=self.security, server=self)
        database.import_schema(schema, version=version)
        await database.ensure_indexes()
        return database

    async def close(self) -> None:
        await self.store_server.close()
