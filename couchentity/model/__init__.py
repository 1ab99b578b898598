"""Runtime entity model."""

from .attachment import Attachment, AttachmentFile
from .entity import Entity
from .entity_factory import EntityFactory
from .namespace import Namespace
from .property import Property
from .property_type import (
    STANDARD_TYPES,
    BooleanPropertyType,
    DateTimePropertyType,
    IntegerPropertyType,
    NumberPropertyType,
    PropertyType,
    TextPropertyType,
)
from .reference import Reference, ReferenceList
from .relationship import Relationship, RelationshipSide

__all__ = [
    "Attachment",
    "AttachmentFile",
    "Entity",
    "EntityFactory",
    "Namespace",
    "Property",
    "PropertyType",
    "STANDARD_TYPES",
    "TextPropertyType",
    "NumberPropertyType",
    "IntegerPropertyType",
    "BooleanPropertyType",
    "DateTimePropertyType",
    "Reference",
    "ReferenceList",
    "Relationship",
    "RelationshipSide",
]
