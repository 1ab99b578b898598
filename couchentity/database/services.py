"""
Data services: persistence of the entities of one model.

- DataService: create/get/save/save_all/delete shared by all services
- CollectionService: many entities per model (ids ``ns/type/key``)
- SingletonService: one entity per model (id ``ns/type``)

Save operations validate first (raising ValidationError), then report store
failures by logging them and returning None. Reads and deletes log store
failures and propagate them.

Invariants:
    - Queries of a collection only ever see documents of its own id range
    - save_all is not transactional: per-document results are returned as
      reported by the store and nothing is rolled back
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import SchemaError, ValidationError
from ..store.base import Document, DocumentNotFoundError, StoreError

if TYPE_CHECKING:
    from ..model.entity import Entity
    from ..model.namespace import Namespace
    from ..store.base import DocumentStore

logger = logging.getLogger(__name__)

# Upper bound of the id range of a collection.
HIGH_KEY = "\ufff0"


class DataService:
    """Persistence operations for the entities of one model."""

    def __init__(self, namespace: Namespace, type_name: str) -> None:
        self.namespace = namespace
        self.type_name = type_name
        self.model = namespace.get_model(type_name)

    @property
    def store(self) -> DocumentStore:
        return self.namespace.database.store

    @property
    def prefix(self) -> str:
        return f"{self.namespace.name}/{self.type_name}"

    def create(self, entity_id: Optional[str] = None) -> Entity:
        return self.namespace.create_entity(self.type_name, entity_id)

    def from_document(self, doc: Document) -> Entity:
        return self.create(doc["_id"]).load_document(doc)

    async def get_document(self, doc_id: str, *, attachments: bool = False, revs_info: bool = False) -> Document:
        try:
            return await self.store.get(doc_id, attachments=attachments, revs_info=revs_info)
        except StoreError as e:
            logger.error(f"Failed to get {doc_id}: {e}", extra={"db": self.store.name, "status": e.status})
            raise

    async def get(self, doc_id: str, *, attachments: bool = False) -> Entity:
        """Fetch and import one entity.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        return self.from_document(await self.get_document(doc_id, attachments=attachments))

    async def save(self, entity: Entity) -> Optional[Document]:
        """Validate and write one entity.

        Returns:
            The store result, or None if the store rejected the write

        Raises:
            ValidationError: If the entity is invalid
        """
        self._check_entity(entity)
        self._validate(entity)
        try:
            result = await self.store.put(entity.to_document())
        except StoreError as e:
            logger.error(
                f"Failed to save {entity.id}: {e}",
                extra={"db": self.store.name, "status": e.status, "reason": e.reason},
            )
            return None
        entity.update_revision(result["rev"])
        logger.debug(f"Saved {entity.id}", extra={"rev": result["rev"]})
        return result

    async def save_all(self, entities: List[Entity]) -> Optional[List[Document]]:
        """Validate and write many entities in one bulk request.

        Returns:
            Per-document results (successes and failures), or None if the
            request itself failed

        Raises:
            ValidationError: If any entity is invalid (nothing is written)
        """
        for entity in entities:
            self._check_entity(entity)
            self._validate(entity)
        try:
            results = await self.store.bulk_docs([entity.to_document() for entity in entities])
        except StoreError as e:
            logger.error(f"Failed to save {len(entities)} entities: {e}", extra={"db": self.store.name})
            return None

        failed = 0
        for entity, result in zip(entities, results):
            if result.get("ok") or ("rev" in result and "error" not in result):
                entity.update_revision(result["rev"])
            else:
                failed += 1
        if failed:
            logger.warning(f"{failed} of {len(entities)} documents were not saved", extra={"db": self.store.name})
        return results

    async def delete(self, target: Entity | str) -> Document:
        """Delete an entity (by entity or id), leaving a tombstone."""
        from ..model.entity import Entity

        if isinstance(target, Entity):
            doc_id, rev = target.id, target.rev
        else:
            doc_id, rev = target, None
        try:
            if rev is None:
                rev = (await self.store.get(doc_id))["_rev"]
            result = await self.store.remove(doc_id, rev)
        except StoreError as e:
            logger.error(f"Failed to delete {doc_id}: {e}", extra={"db": self.store.name, "status": e.status})
            raise
        if isinstance(target, Entity):
            target.update_revision(result["rev"], deleted=True)
        logger.debug(f"Deleted {doc_id}", extra={"rev": result["rev"]})
        return result

    async def define_index(self, fields: List[str], name: Optional[str] = None) -> Document:
        index_name = name or f"{self.prefix.replace('/', '-')}-{'-'.join(fields)}"
        return await self.store.create_index(
            {"index": {"fields": list(fields)}, "name": index_name, "ddoc": index_name, "type": "json"}
        )

    def _check_entity(self, entity: Entity) -> None:
        if entity.namespace.name != self.namespace.name or entity.type_name != self.type_name:
            raise SchemaError(f"Service '{self.prefix}' cannot persist '{entity.type}'", name=entity.type)

    @staticmethod
    def _validate(entity: Entity) -> None:
        try:
            entity.validate()
        except ValidationError as e:
            raise ValidationError(
                f"Validation error of type {entity.type}: {e.message}",
                field_name=e.field_name,
                errors=e.errors,
            ) from e


class CollectionService(DataService):
    """Service of a model with many entities."""

    def _range(self) -> Dict[str, Any]:
        return {"_id": {"$gt": f"{self.prefix}/", "$lt": f"{self.prefix}/{HIGH_KEY}"}}

    async def get_all(self, *, page: Optional[int] = None, size: Optional[int] = None) -> List[Entity]:
        """All entities of the collection, in id order."""
        result = await self.store.all_docs(
            start_key=f"{self.prefix}/", end_key=f"{self.prefix}/{HIGH_KEY}", include_docs=True
        )
        rows = [row for row in result["rows"] if row.get("doc")]
        if size:
            start = ((page or 1) - 1) * size
            rows = rows[start:start + size]
        return [self.from_document(row["doc"]) for row in rows]

    async def get_some(self, ids: List[str]) -> List[Entity]:
        """Entities for the given ids; missing, deleted or foreign ids are skipped."""
        result = await self.store.all_docs(keys=list(ids), include_docs=True)
        return [
            self.from_document(row["doc"])
            for row in result["rows"]
            if row.get("doc") and row["id"].startswith(f"{self.prefix}/")
        ]

    async def find(
        self,
        selector: Optional[Dict[str, Any]] = None,
        *,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> List[Entity]:
        """Entities of the collection matching a Mango selector."""
        full = {"$and": [self._range(), selector]} if selector else self._range()
        skip = ((page or 1) - 1) * size if size else 0
        result = await self.store.find(full, limit=size, skip=skip)
        return [self.from_document(doc) for doc in result["docs"]]

    async def find_one(self, selector: Optional[Dict[str, Any]] = None) -> Optional[Entity]:
        found = await self.find(selector, size=1)
        return found[0] if found else None

    async def exists(self, doc_id: str) -> bool:
        try:
            await self.store.get(doc_id)
        except DocumentNotFoundError:
            return False
        return True

    async def count(self) -> int:
        result = await self.store.all_docs(start_key=f"{self.prefix}/", end_key=f"{self.prefix}/{HIGH_KEY}")
        return len(result["rows"])


class SingletonService(DataService):
    """Service of a model with a single entity."""

    def create(self, entity_id: Optional[str] = None) -> Entity:
        return self.namespace.create_entity(self.type_name, self.prefix)

    async def get(self, doc_id: Optional[str] = None, *, attachments: bool = False) -> Optional[Entity]:
        """The singleton, or None if it was never saved."""
        try:
            doc = await self.store.get(doc_id or self.prefix, attachments=attachments)
        except DocumentNotFoundError:
            return None
        return self.from_document(doc)

    async def exists(self) -> bool:
        return await self.get() is not None

    async def delete(self, target: Entity | str | None = None) -> Document:
        return await super().delete(target if target is not None else self.prefix)
