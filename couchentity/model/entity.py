"""
Entity: one document of a model, with its field tables.

An Entity is generic. Instead of generating a class per model, every entity
carries per-name tables of properties, references, reference lists,
attachments and relationship query methods; attribute access dispatches on
those tables:

    >>> user = namespace.create_entity("user")
    >>> user.username = "jdoe"          # Property.set
    >>> user.username                   # Property.get
    'jdoe'
    >>> project.company = company       # Reference.set
    >>> await company.getProjectList()  # relationship query

Document shape (to_document / load_document)::

    {"_id", "_rev", "_deleted", "type", "draft",
     <property values>, <reference ids>,
     "_attachments": {"name|filename": {...}}}

Invariants:
    - The id is generated once: ``ns/type`` for singletons,
      ``ns/type/{millis}-{000..999}`` otherwise; ``key`` is the last segment
      of a collection id and "" for singletons
    - load_document(to_document()) reproduces every field
    - validate() does nothing while the entity is a draft
    - Field names never shadow Entity attributes (checked at model
      registration)
"""

from __future__ import annotations

import logging
import random
from difflib import get_close_matches
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..errors import PropertyAccessError, SchemaError, UnknownFieldError, ValidationError
from ..schema.definitions import ModelDef, ServiceLevel
from .attachment import Attachment, group_attachments
from .property import Property
from .reference import Reference, ReferenceList
from .tools import check_rules, now_millis

if TYPE_CHECKING:
    from ..database.services import DataService
    from .namespace import Namespace
    from .relationship import Relationship

logger = logging.getLogger(__name__)


ID_SUFFIXES = 1000

_last_millis = 0
_used_suffixes: set[int] = set()


def generate_id(namespace: str, model: ModelDef) -> str:
    """New entity id; suffixes never repeat within one millisecond."""
    global _last_millis
    if model.service is ServiceLevel.SINGLETON:
        return f"{namespace}/{model.type_name}"
    millis = now_millis()
    if millis != _last_millis:
        _last_millis = millis
        _used_suffixes.clear()
    if len(_used_suffixes) >= ID_SUFFIXES:
        raise SchemaError(f"No free id left for {namespace}/{model.type_name} in millisecond {millis}")
    suffix = random.randrange(ID_SUFFIXES)
    while suffix in _used_suffixes:
        suffix = random.randrange(ID_SUFFIXES)
    _used_suffixes.add(suffix)
    return f"{namespace}/{model.type_name}/{millis}-{suffix:03d}"


class Entity:
    """Runtime instance of a model."""

    def __init__(self, namespace: Namespace, model: ModelDef, entity_id: Optional[str] = None) -> None:
        self._namespace = namespace
        self._model = model
        self._draft = False
        self._id = entity_id or generate_id(namespace.name, model)
        self._rev: Optional[str] = None
        self._deleted = False
        self._reset_fields()

    @classmethod
    def reserved_names(cls) -> frozenset[str]:
        """Public attribute names a field may not use."""
        return frozenset(name for name in dir(cls) if not name.startswith("_"))

    # Identity

    @property
    def id(self) -> str:
        return self._id

    @property
    def rev(self) -> Optional[str]:
        return self._rev

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def key(self) -> str:
        parts = self._id.split("/", 2)
        return parts[2] if len(parts) == 3 else ""

    @property
    def type(self) -> str:
        """Full model name, ``namespace/typeName``."""
        return f"{self._namespace.name}/{self._model.type_name}"

    @property
    def type_name(self) -> str:
        return self._model.type_name

    @property
    def namespace(self) -> Namespace:
        return self._namespace

    @property
    def model(self) -> ModelDef:
        return self._model

    @property
    def relationships(self) -> Dict[str, Relationship]:
        return dict(self._relationships)

    @property
    def field_names(self) -> List[str]:
        return [*self._properties, *self._references, *self._attachments, *self._queries]

    def update_revision(self, rev: Optional[str], deleted: bool = False) -> None:
        """Record the revision returned by the store."""
        self._rev = rev
        self._deleted = deleted

    # Draft mode

    @property
    def draft(self) -> bool:
        return self._draft

    @draft.setter
    def draft(self, value: bool) -> None:
        self.set_draft(value)

    def set_draft(self, value: bool) -> None:
        """Enable or disable draft mode, here and in nested entities."""
        self._draft = bool(value)
        for prop in self._properties.values():
            for nested in prop.nested_entities():
                nested.set_draft(value)

    # Field tables

    def _reset_fields(self) -> None:
        self._properties: Dict[str, Property] = {}
        self._references: Dict[str, Reference | ReferenceList] = {}
        self._attachments: Dict[str, Attachment] = {}
        self._queries: Dict[str, Callable[..., Any]] = {}
        self._relationships: Dict[str, Relationship] = {}

    def _check_free(self, name: str) -> None:
        if name in self.field_names:
            raise SchemaError(f"Field '{name}' defined twice on '{self.type}'", name=name)

    def add_property(self, prop: Property) -> None:
        self._check_free(prop.name)
        self._properties[prop.name] = prop

    def add_attachment(self, attachment: Attachment) -> None:
        self._check_free(attachment.name)
        self._attachments[attachment.name] = attachment

    def add_reference(self, name: str, reference: Reference | ReferenceList, relationship: Relationship) -> None:
        self._check_free(name)
        self._references[name] = reference
        self._relationships[relationship.name] = relationship

    def add_query(self, name: str, query: Callable[..., Any], relationship: Relationship) -> None:
        self._check_free(name)
        self._queries[name] = query
        self._relationships[relationship.name] = relationship

    def get_property(self, name: str) -> Property:
        if name not in self._properties:
            raise self._unknown(name)
        return self._properties[name]

    def get_attachment(self, name: str) -> Attachment:
        if name not in self._attachments:
            raise self._unknown(name)
        return self._attachments[name]

    def get_reference(self, name: str) -> Reference | ReferenceList:
        if name not in self._references:
            raise self._unknown(name)
        return self._references[name]

    def get_validation_rules(self, name: str) -> tuple[Callable[[Any], Any], ...]:
        return self.get_property(name).get_validation_rules()

    # Generic accessors

    def get_value(self, name: str) -> Any:
        """Read a field by name."""
        if name in self._properties:
            return self._properties[name].get()
        if name in self._references:
            return self._references[name]
        if name in self._attachments:
            return self._attachments[name]
        if name in self._queries:
            return self._queries[name]
        raise self._unknown(name)

    def set_value(self, name: str, value: Any) -> None:
        """Write a field by name."""
        if name in self._properties:
            self._properties[name].set(value)
        elif name in self._references:
            reference = self._references[name]
            if isinstance(reference, ReferenceList):
                reference.replace(value)
            else:
                reference.set(value)
        elif name in self._attachments or name in self._queries:
            raise PropertyAccessError(f"Field '{name}' of '{self.type}' cannot be assigned", name)
        else:
            raise self._unknown(name)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal attribute lookup fails.
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.get_value(name)
        except UnknownFieldError as e:
            raise AttributeError(e.message) from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or hasattr(type(self), name):
            object.__setattr__(self, name, value)
            return
        self.set_value(name, value)

    def _unknown(self, name: str) -> UnknownFieldError:
        suggestions = get_close_matches(name, self.field_names, n=3)
        return UnknownFieldError(name, self.type, suggestions)

    # Validation

    def validate(self) -> None:
        """Validate every field and the model rules.

        Raises:
            ValidationError: On the first failure (nothing happens in draft mode)
        """
        if self._draft:
            return
        for prop in self._properties.values():
            prop.validate()
        for reference in self._references.values():
            reference.validate()
        for attachment in self._attachments.values():
            attachment.validate()
        result = check_rules(self, self._model.rules)
        if result is not True:
            raise ValidationError(f"Invalid {self.type}: {result}", errors=[result])

    # Documents

    def to_document(self, nested: bool = False) -> Dict[str, Any]:
        """Export to a store document.

        Args:
            nested: Export for embedding in another document (no revision,
                deletion flag or attachments)
        """
        doc: Dict[str, Any] = {"_id": self._id}
        if not nested:
            if self._rev:
                doc["_rev"] = self._rev
            if self._deleted:
                doc["_deleted"] = True
        doc["type"] = self.type
        if self._draft:
            doc["draft"] = True

        for name, prop in self._properties.items():
            if not prop.is_computed:
                doc[name] = prop.dump()
        for name, reference in self._references.items():
            doc[name] = list(reference.id_list) if isinstance(reference, ReferenceList) else reference.id

        if not nested:
            files: Dict[str, Any] = {}
            for attachment in self._attachments.values():
                files.update(attachment.to_document())
            if files:
                doc["_attachments"] = files
        return doc

    def load_document(self, doc: Dict[str, Any]) -> Entity:
        """Import a store document into this entity.

        Raises:
            SchemaError: If the document belongs to another model
        """
        doc_type = doc.get("type")
        if doc_type is not None and doc_type != self.type:
            raise SchemaError(f"Cannot load a '{doc_type}' document into '{self.type}'", name=doc_type)

        if doc.get("_id"):
            self._id = doc["_id"]
        self._rev = doc.get("_rev")
        self._deleted = bool(doc.get("_deleted"))

        for name, prop in self._properties.items():
            if name in doc:
                prop.load(doc[name])
        for name, reference in self._references.items():
            if name in doc:
                if isinstance(reference, ReferenceList):
                    reference.replace(doc[name] or [])
                else:
                    reference.set(doc[name])

        grouped = group_attachments(doc.get("_attachments") or {})
        for name, attachment in self._attachments.items():
            attachment.load_entries(grouped.get(name, {}))

        # Nested entities keep their own flag unless the parent is a draft.
        self._draft = bool(doc.get("draft"))
        if self._draft:
            self.set_draft(True)
        return self

    # Persistence

    @property
    def service(self) -> DataService:
        return self._namespace.get_service(self._model.type_name)

    @property
    def has_attachments(self) -> bool:
        return any(attachment.count for attachment in self._attachments.values())

    async def save(self) -> Optional[Dict[str, Any]]:
        return await self.service.save(self)

    async def delete(self) -> Dict[str, Any]:
        return await self.service.delete(self)

    async def refresh(self) -> Entity:
        """Reload from the store, discarding unsaved changes."""
        doc = await self.service.get_document(self._id)
        self._namespace.get_factory(self._model.type_name).populate(self)
        self.load_document(doc)
        logger.debug(f"Refreshed {self._id}", extra={"rev": self._rev})
        return self

    # Display

    def to_string(self) -> str:
        if self._model.to_string is not None:
            return self._model.to_string(self)
        label = self._model.title or self.type
        return f"{label} {self.key}".strip()

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"<Entity {self._id}>"
