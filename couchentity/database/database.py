"""
Database: one store bound to an imported schema.

The database owns the runtime registries built from a Schema: namespaces,
data services per model, relationships and property types. Importing a
schema replaces all of them at once, which is how migrations switch a live
database to a new schema version.

Invariants:
    - ``version`` is the schema version the stored data conforms to
    - Every model with a service level other than ``none`` has exactly one
      data service
    - Relationship ends always name registered models
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import SchemaError
from ..model.namespace import Namespace
from ..model.property_type import STANDARD_TYPES, PropertyType
from ..model.relationship import Relationship
from ..schema.definitions import MIGRATIONS_DOC_ID, SCHEMA_DOC_ID, Schema, ServiceLevel
from ..security import Security
from ..store.base import Document, DocumentNotFoundError
from .services import CollectionService, DataService, SingletonService

if TYPE_CHECKING:
    from ..store.base import DocumentStore
    from .server import Server

logger = logging.getLogger(__name__)


class Database:
    """Schema-aware view of one document store.

    Attributes:
        name: Database name
        store: Underlying document store
        security: Hashing/encryption configuration for its properties
        version: Schema version of the stored data
        namespaces: Namespaces by name
        data: Data services by namespace and type name
        relationships: Relationships by name
        types: Property types by name
    """

    def __init__(
        self,
        name: str,
        store: DocumentStore,
        security: Optional[Security] = None,
        server: Optional[Server] = None,
    ) -> None:
        self.name = name
        self.store = store
        self.security = security if security is not None else Security()
        self.server = server
        self.version = 0
        self.schema: Optional[Schema] = None
        self.namespaces: Dict[str, Namespace] = {}
        self.data: Dict[str, Dict[str, DataService]] = {}
        self.relationships: Dict[str, Relationship] = {}
        self.types: Dict[str, PropertyType] = {}

    def import_schema(self, schema: Schema, version: Optional[int] = None) -> None:
        """Build the runtime registries from a schema.

        Args:
            schema: Schema to import
            version: Version of the stored data, when it differs from the
                schema's own version

        Raises:
            SchemaError: If a type, namespace or relationship is invalid
        """
        self.namespaces = {}
        self.data = {}
        self.relationships = {}
        self.types = {name: cls() for name, cls in STANDARD_TYPES.items()}
        for name, property_type in schema.types.items():
            self.types[name] = property_type() if isinstance(property_type, type) else property_type

        for name, definition in schema.namespaces.items():
            self.use_namespace(
                Namespace(name, definition.title, definition.description, definition.models, database=self)
            )

        for definition in schema.relationships:
            for end in (definition.left, definition.right):
                namespace = self.namespaces.get(end.namespace)
                if namespace is None or not namespace.is_registered(end.model_name):
                    raise SchemaError(
                        f"Relationship '{definition.name}' refers to unknown model '{end.type_name}'",
                        name=definition.name,
                    )
            self.relationships[definition.name] = Relationship(definition)

        self.schema = schema
        self.version = schema.version if version is None else version
        logger.info(
            f"Imported schema version {schema.version} into {self.name}",
            extra={
                "db": self.name,
                "namespaces": sorted(self.namespaces),
                "relationships": sorted(self.relationships),
            },
        )

    def use_namespace(self, namespace: Namespace) -> None:
        """Register a namespace and create its data services."""
        if namespace.name in self.namespaces:
            raise SchemaError(f"Namespace '{namespace.name}' already registered", name=namespace.name)
        namespace.database = self
        self.namespaces[namespace.name] = namespace
        services: Dict[str, DataService] = {}
        for type_name, model in namespace.models.items():
            if model.service is ServiceLevel.SINGLETON:
                services[type_name] = SingletonService(namespace, type_name)
            elif model.service is ServiceLevel.COLLECTION:
                services[type_name] = CollectionService(namespace, type_name)
        self.data[namespace.name] = services

    def get_namespace(self, name: str) -> Namespace:
        namespace = self.namespaces.get(name)
        if namespace is None:
            raise SchemaError(f"Namespace '{name}' not registered in {self.name}", name=name)
        return namespace

    def service(self, namespace: str, type_name: str) -> Any:
        """Data service of ``namespace/type_name``.

        Raises:
            SchemaError: If the model is unknown or has no service
        """
        service = self.data.get(namespace, {}).get(type_name)
        if service is None:
            raise SchemaError(f"No data service for '{namespace}/{type_name}'", name=f"{namespace}/{type_name}")
        return service

    async def ensure_indexes(self) -> List[Document]:
        """Create the index of every relationship (idempotent)."""
        results = []
        for relationship in self.relationships.values():
            results.append(await self.store.create_index(relationship.get_index()))
        return results

    async def get_info(self) -> Document:
        info = await self.store.info()
        return {**info, "schema_version": self.version}

    async def get_schema(self) -> Optional[Document]:
        """Stored schema document, or None if the database has none."""
        try:
            return await self.store.get(SCHEMA_DOC_ID)
        except DocumentNotFoundError:
            return None

    async def get_migration_log(self) -> List[Dict[str, Any]]:
        try:
            doc = await self.store.get(MIGRATIONS_DOC_ID)
        except DocumentNotFoundError:
            return []
        return list(doc.get("log", []))

    async def close(self) -> None:
        await self.store.close()

    def __repr__(self) -> str:
        return f"Database({self.name!r}, version={self.version})"
