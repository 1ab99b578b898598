"""
Schema definitions for couchentity.

This module provides the declarative description of a database:
- PropertyDef: one property of a model (built with prop())
- AttachmentDef: one named attachment slot of a model
- ModelDef: a model (entity type) and its service level
- NamespaceDef: a group of models
- RelationshipDef / RelationshipEnd: database-level relationships
- Schema: version + namespaces + relationships + custom property types

Definitions are immutable. The schema document stored in every database
(``$/schema``) is produced by Schema.to_dict(); callables (defaults,
predicates, rules, hooks) cannot be stored and are written as
``{"$type": "function", "name": ...}`` markers.

Invariants:
    - Model type names are unique within a namespace
    - Property and attachment names are unique within a model
    - A property is never both hashed and encrypted
    - A computed property has no default and no stored value

Example:
    >>> User = ModelDef(
    ...     type_name="user",
    ...     properties=(
    ...         prop("username", required=True),
    ...         prop("password", hashed=True),
    ...     ),
    ... )
    >>> schema = Schema(version=1, namespaces={"security": NamespaceDef(models=(User,))})
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SCHEMA_DOC_ID = "$/schema"
MIGRATIONS_DOC_ID = "$/migrations"

FUNCTION_MARKER = "function"


class ServiceLevel(Enum):
    """How entities of a model are persisted."""

    NONE = "none"
    SINGLETON = "singleton"
    COLLECTION = "collection"

    @classmethod
    def from_str(cls, value: str) -> ServiceLevel:
        """Convert string to ServiceLevel."""
        for level in cls:
            if level.value == value:
                return level
        raise ValueError(f"Invalid service level: {value}")


class RelationshipKind(Enum):
    """Supported relationship kinds."""

    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"

    @classmethod
    def from_str(cls, value: str) -> RelationshipKind:
        """Convert string to RelationshipKind."""
        for kind in cls:
            if kind.value == value:
                return kind
        raise ValueError(f"Invalid relationship type: {value}")


def _encode(value: Any) -> Any:
    if callable(value):
        return {"$type": FUNCTION_MARKER, "name": getattr(value, "__qualname__", repr(value))}
    return value


def _is_marker(value: Any) -> bool:
    return isinstance(value, dict) and value.get("$type") == FUNCTION_MARKER


def _decode(value: Any) -> Any:
    return None if _is_marker(value) else value


def type_name_of(property_type: Any) -> str | None:
    """Name under which a property type is (or would be) registered."""
    if property_type is None or isinstance(property_type, str):
        return property_type
    return getattr(property_type, "name", None) or getattr(property_type, "__name__", None)


@dataclass(frozen=True)
class PropertyDef:
    """Property definition within a model.

    Attributes:
        name: Property name, also the document field name
        title: Display title
        description: Documentation
        default: Literal or zero-argument callable; None means no default
        computed: Function of the owning entity; computed properties are
            never stored
        required: Bool or predicate of the owning entity
        readonly: Bool or predicate of the owning entity
        hashed: Store a one-way hash of the value
        encrypted: Store the value encrypted
        type: PropertyType instance, subclass or registered type name
        rules: Callables ``value -> True | message``
        multiple: Value is a list
        model: Nested model, ``"namespace/typeName"`` or a bare typeName of
            the owning namespace
        before_write: Hook applied to each written value
        after_read: Hook applied to each read value
        to_string: Formatter used by Property.to_string()
    """

    name: str
    title: str = ""
    description: str = ""
    default: Any = None
    computed: Optional[Callable[[Any], Any]] = None
    required: bool | Callable[[Any], bool] = False
    readonly: bool | Callable[[Any], bool] = False
    hashed: bool = False
    encrypted: bool = False
    type: Any = None
    rules: tuple[Callable[[Any], Any], ...] = ()
    multiple: bool = False
    model: str | None = None
    before_write: Optional[Callable[[Any], Any]] = None
    after_read: Optional[Callable[[Any], Any]] = None
    to_string: Optional[Callable[[Any], str]] = None

    def __post_init__(self) -> None:
        """Validate property definition."""
        if not self.name:
            raise ValueError("Property name cannot be empty")
        if self.hashed and self.encrypted:
            raise ValueError(f"Property '{self.name}' cannot be both hashed and encrypted")
        if self.computed is not None and self.default is not None:
            raise ValueError(f"Computed property '{self.name}' cannot have a default")
        if self.model and (self.hashed or self.encrypted):
            raise ValueError(f"Model property '{self.name}' cannot be hashed or encrypted")

    @property
    def is_computed(self) -> bool:
        return self.computed is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored (JSON-safe) form."""
        result: dict[str, Any] = {"name": self.name}
        if self.title:
            result["title"] = self.title
        if self.description:
            result["description"] = self.description
        if self.default is not None:
            result["default"] = _encode(self.default)
        if self.computed is not None:
            result["computed"] = _encode(self.computed)
        if self.required:
            result["required"] = _encode(self.required)
        if self.readonly:
            result["readonly"] = _encode(self.readonly)
        if self.hashed:
            result["hashed"] = True
        if self.encrypted:
            result["encrypted"] = True
        if self.type is not None:
            result["type"] = type_name_of(self.type)
        if self.rules:
            result["rules"] = [_encode(rule) for rule in self.rules]
        if self.multiple:
            result["multiple"] = True
        if self.model:
            result["model"] = self.model
        if self.before_write is not None:
            result["beforeWrite"] = _encode(self.before_write)
        if self.after_read is not None:
            result["afterRead"] = _encode(self.after_read)
        if self.to_string is not None:
            result["toString"] = _encode(self.to_string)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PropertyDef:
        """Rebuild the declarative part of a stored property definition."""
        return cls(
            name=data["name"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            default=_decode(data.get("default")),
            required=_decode(data.get("required")) or False,
            readonly=_decode(data.get("readonly")) or False,
            hashed=bool(data.get("hashed")),
            encrypted=bool(data.get("encrypted")),
            type=data.get("type"),
            rules=(),
            multiple=bool(data.get("multiple")),
            model=data.get("model"),
        )


def prop(
    name: str,
    type: Any = None,
    *,
    title: str = "",
    description: str = "",
    default: Any = None,
    computed: Optional[Callable[[Any], Any]] = None,
    required: bool | Callable[[Any], bool] = False,
    readonly: bool | Callable[[Any], bool] = False,
    hashed: bool = False,
    encrypted: bool = False,
    rules: Any = (),
    multiple: bool = False,
    model: str | None = None,
    before_write: Optional[Callable[[Any], Any]] = None,
    after_read: Optional[Callable[[Any], Any]] = None,
    to_string: Optional[Callable[[Any], str]] = None,
) -> PropertyDef:
    """Convenience function to create a PropertyDef.

    Example:
        >>> name = prop("name", "Text", required=True)
        >>> tags = prop("tags", multiple=True, default=list)
        >>> size = prop("size", "Integer", rules=[lambda v: v > 0 or "must be positive"])
    """
    return PropertyDef(
        name=name,
        title=title,
        description=description,
        default=default,
        computed=computed,
        required=required,
        readonly=readonly,
        hashed=hashed,
        encrypted=encrypted,
        type=type,
        rules=tuple(rules),
        multiple=multiple,
        model=model,
        before_write=before_write,
        after_read=after_read,
        to_string=to_string,
    )


@dataclass(frozen=True)
class AttachmentDef:
    """Attachment slot of a model.

    Attributes:
        name: Attachment name, prefix of the stored attachment keys
        filters: Allowed content types (empty allows any)
        size: Maximum file size in kB (0 means unlimited)
        multiple: Allow more than one file
        limit: Maximum number of files when multiple (0 means unlimited)
        required: At least one file is required
    """

    name: str
    title: str = ""
    description: str = ""
    filters: tuple[str, ...] = ()
    size: int = 0
    multiple: bool = False
    limit: int = 0
    required: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Attachment name cannot be empty")
        if "|" in self.name:
            raise ValueError(f"Attachment name '{self.name}' cannot contain '|'")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        if self.title:
            result["title"] = self.title
        if self.description:
            result["description"] = self.description
        if self.filters:
            result["filters"] = list(self.filters)
        if self.size:
            result["size"] = self.size
        if self.multiple:
            result["multiple"] = True
        if self.limit:
            result["limit"] = self.limit
        if self.required:
            result["required"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttachmentDef:
        return cls(
            name=data["name"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            filters=tuple(data.get("filters") or ()),
            size=data.get("size", 0),
            multiple=bool(data.get("multiple")),
            limit=data.get("limit", 0),
            required=bool(data.get("required")),
        )


@dataclass(frozen=True)
class ModelDef:
    """Definition of a model (entity type).

    Attributes:
        type_name: Model name, unique in its namespace
        service: Persistence level (none, singleton, collection)
        properties: Property definitions
        attachments: Attachment slots
        rules: Model-level predicates ``entity -> True | message``
        to_string: Formatter for Entity.to_string()
    """

    type_name: str
    service: ServiceLevel = ServiceLevel.COLLECTION
    properties: tuple[PropertyDef, ...] = dataclass_field(default_factory=tuple)
    attachments: tuple[AttachmentDef, ...] = dataclass_field(default_factory=tuple)
    title: str = ""
    description: str = ""
    rules: tuple[Callable[[Any], Any], ...] = ()
    to_string: Optional[Callable[[Any], str]] = None

    def __post_init__(self) -> None:
        """Validate model definition."""
        if not self.type_name:
            raise ValueError("Model type name cannot be empty")
        if "/" in self.type_name:
            raise ValueError(f"Model type name '{self.type_name}' cannot contain '/'")
        if isinstance(self.service, str):
            object.__setattr__(self, "service", ServiceLevel.from_str(self.service))

        names = [p.name for p in self.properties] + [a.name for a in self.attachments]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field(s) {duplicates} in model '{self.type_name}'")

    def get_property(self, name: str) -> PropertyDef | None:
        for p in self.properties:
            if p.name == name:
                return p
        return None

    def get_attachment(self, name: str) -> AttachmentDef | None:
        for a in self.attachments:
            if a.name == name:
                return a
        return None

    def get_field_names(self) -> list[str]:
        return [p.name for p in self.properties] + [a.name for a in self.attachments]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "typeName": self.type_name,
            "service": self.service.value,
            "properties": [p.to_dict() for p in self.properties],
        }
        if self.attachments:
            result["attachments"] = [a.to_dict() for a in self.attachments]
        if self.title:
            result["title"] = self.title
        if self.description:
            result["description"] = self.description
        if self.rules:
            result["rules"] = [_encode(rule) for rule in self.rules]
        if self.to_string is not None:
            result["toString"] = _encode(self.to_string)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelDef:
        properties = []
        for item in data.get("properties") or []:
            if _is_marker(item.get("computed")):
                logger.warning(
                    f"Computed property '{item['name']}' of '{data['typeName']}' "
                    "has no stored implementation; skipped"
                )
                continue
            properties.append(PropertyDef.from_dict(item))
        return cls(
            type_name=data["typeName"],
            service=ServiceLevel.from_str(data.get("service", "collection")),
            properties=tuple(properties),
            attachments=tuple(AttachmentDef.from_dict(a) for a in data.get("attachments") or []),
            title=data.get("title", ""),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class NamespaceDef:
    """A named group of models."""

    models: tuple[ModelDef, ...] = dataclass_field(default_factory=tuple)
    title: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        names = [m.type_name for m in self.models]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate model(s) {duplicates} in namespace")

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "models": [m.to_dict() for m in self.models],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NamespaceDef:
        return cls(
            models=tuple(ModelDef.from_dict(m) for m in data.get("models") or []),
            title=data.get("title", ""),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class RelationshipEnd:
    """One side of a relationship.

    Attributes:
        type_name: Full model name, ``"namespace/typeName"``
        property_name: Overrides the generated reference property name
        query_name: Overrides the generated query method name (without
            the ``get`` prefix)
    """

    type_name: str
    property_name: str | None = None
    query_name: str | None = None

    def __post_init__(self) -> None:
        parts = self.type_name.split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Relationship side must be 'namespace/typeName', got '{self.type_name}'")

    @property
    def namespace(self) -> str:
        return self.type_name.split("/")[0]

    @property
    def model_name(self) -> str:
        return self.type_name.split("/")[1]

    @classmethod
    def parse(cls, value: str | dict[str, Any] | RelationshipEnd) -> RelationshipEnd:
        if isinstance(value, RelationshipEnd):
            return value
        if isinstance(value, str):
            return cls(type_name=value)
        return cls(
            type_name=value["typeName"],
            property_name=value.get("propertyName"),
            query_name=value.get("queryName"),
        )

    def to_dict(self) -> str | dict[str, Any]:
        if not self.property_name and not self.query_name:
            return self.type_name
        result: dict[str, Any] = {"typeName": self.type_name}
        if self.property_name:
            result["propertyName"] = self.property_name
        if self.query_name:
            result["queryName"] = self.query_name
        return result


@dataclass(frozen=True)
class RelationshipDef:
    """Relationship between two models.

    ``left``/``right`` accept a ``"namespace/typeName"`` string, a dict in
    the stored form or a RelationshipEnd; they are normalised to
    RelationshipEnd.

    Example:
        >>> RelationshipDef("company-projects", "one-to-many", "crm/company", "crm/project")
    """

    name: str
    kind: RelationshipKind
    left: Any
    right: Any
    required: bool = False
    title: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Relationship name cannot be empty")
        if isinstance(self.kind, str):
            object.__setattr__(self, "kind", RelationshipKind.from_str(self.kind))
        object.__setattr__(self, "left", RelationshipEnd.parse(self.left))
        object.__setattr__(self, "right", RelationshipEnd.parse(self.right))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.kind.value,
            "left": self.left.to_dict(),
            "right": self.right.to_dict(),
            "required": self.required,
        }
        if self.title:
            result["title"] = self.title
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> RelationshipDef:
        return cls(
            name=name,
            kind=RelationshipKind.from_str(data["type"]),
            left=data["left"],
            right=data["right"],
            required=bool(data.get("required")),
            title=data.get("title", ""),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class Schema:
    """Versioned description of a database.

    Attributes:
        version: Schema version, checked by migrations
        namespaces: Namespace definitions by name
        relationships: Database-level relationships
        types: Custom property types by name
    """

    version: int = 1
    namespaces: Dict[str, NamespaceDef] = dataclass_field(default_factory=dict)
    relationships: tuple[RelationshipDef, ...] = dataclass_field(default_factory=tuple)
    types: Dict[str, Any] = dataclass_field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.version < 0:
            raise ValueError(f"Schema version must be non-negative, got {self.version}")
        names = [r.name for r in self.relationships]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate relationship(s) {duplicates}")

    def get_namespace(self, name: str) -> NamespaceDef | None:
        return self.namespaces.get(name)

    def get_relationship(self, name: str) -> RelationshipDef | None:
        for r in self.relationships:
            if r.name == name:
                return r
        return None

    def to_dict(self) -> dict[str, Any]:
        """Stored schema body (without ``_id``/``_rev``)."""
        return {
            "version": self.version,
            "namespaces": {name: ns.to_dict() for name, ns in sorted(self.namespaces.items())},
            "relationships": {r.name: r.to_dict() for r in self.relationships},
        }

    def fingerprint(self) -> str:
        """Stable hash of the stored schema body."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return f"sha256:{hashlib.sha256(canonical.encode()).hexdigest()}"

    def to_document(self) -> dict[str, Any]:
        return {"_id": SCHEMA_DOC_ID, "fingerprint": self.fingerprint(), **self.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any], types: Dict[str, Any] | None = None) -> Schema:
        """Rebuild a schema from its stored form.

        Only the declarative parts survive: stored function markers become
        absent values and computed properties are skipped.

        Args:
            data: Stored schema body or document
            types: Custom property types to register by name
        """
        return cls(
            version=data.get("version", 1),
            namespaces={
                name: NamespaceDef.from_dict(ns) for name, ns in (data.get("namespaces") or {}).items()
            },
            relationships=tuple(
                RelationshipDef.from_dict(name, rel)
                for name, rel in (data.get("relationships") or {}).items()
            ),
            types=dict(types or {}),
        )
