"""Declarative schema definitions."""

from .definitions import (
    MIGRATIONS_DOC_ID,
    SCHEMA_DOC_ID,
    AttachmentDef,
    ModelDef,
    NamespaceDef,
    PropertyDef,
    RelationshipDef,
    RelationshipEnd,
    RelationshipKind,
    Schema,
    ServiceLevel,
    prop,
)

__all__ = [
    "SCHEMA_DOC_ID",
    "MIGRATIONS_DOC_ID",
    "AttachmentDef",
    "ModelDef",
    "NamespaceDef",
    "PropertyDef",
    "RelationshipDef",
    "RelationshipEnd",
    "RelationshipKind",
    "Schema",
    "ServiceLevel",
    "prop",
]
