"""
Relationship resolution.

A Relationship is built once per schema import and applied to every entity
the factory creates. Depending on the kind and on which side the entity is,
it adds either a reference field or an async query method:

    one-to-many (left 1 -> right n)
        left:  get<Right>List()   -> right entities whose <left> == this.id
        right: <left>             -> Reference to the left entity

    many-to-many (left n -> right n)
        left:  <right>List        -> ReferenceList of right entities
        right: get<Left>List()    -> left entities whose <right>List contains this.id

Names can be overridden per side with ``property_name`` / ``query_name``.

Invariants:
    - Sides match on exact ``namespace/typeName``
    - An entity matching neither side, or both (self relationship), is left
      untouched
    - The persisted foreign-key field is the one indexed by get_index()
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List

from ..schema.definitions import RelationshipDef, RelationshipEnd, RelationshipKind
from .reference import Reference, ReferenceList
from .tools import capitalize

if TYPE_CHECKING:
    from .entity import Entity

logger = logging.getLogger(__name__)


class RelationshipSide(Enum):
    LEFT = "left"
    RIGHT = "right"


class Relationship:
    """Runtime form of a RelationshipDef."""

    def __init__(self, definition: RelationshipDef) -> None:
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def kind(self) -> RelationshipKind:
        return self.definition.kind

    @property
    def left(self) -> RelationshipEnd:
        return self.definition.left

    @property
    def right(self) -> RelationshipEnd:
        return self.definition.right

    @property
    def required(self) -> bool:
        return self.definition.required

    @property
    def query_name(self) -> str:
        """Query method added to the "one" side (left for one-to-many, right for many-to-many)."""
        if self.kind is RelationshipKind.ONE_TO_MANY:
            return "get" + capitalize(self.left.query_name or f"{self.right.model_name}List")
        return "get" + capitalize(self.right.query_name or f"{self.left.model_name}List")

    @property
    def property_name(self) -> str:
        """Persisted reference field (right for one-to-many, left for many-to-many)."""
        if self.kind is RelationshipKind.ONE_TO_MANY:
            return self.right.property_name or self.left.model_name
        return self.left.property_name or f"{self.right.model_name}List"

    def get_side(self, entity: Entity) -> RelationshipSide | None:
        is_left = entity.type == self.left.type_name
        is_right = entity.type == self.right.type_name
        if is_left == is_right:
            return None
        return RelationshipSide.LEFT if is_left else RelationshipSide.RIGHT

    def implement(self, entity: Entity) -> bool:
        """Add this relationship's field or query method to an entity.

        Returns:
            False if the entity is not (unambiguously) on either side
        """
        side = self.get_side(entity)
        if side is None:
            return False

        database = entity.namespace.database
        one_to_many = self.kind is RelationshipKind.ONE_TO_MANY
        if one_to_many and side is RelationshipSide.LEFT:
            entity.add_query(self.query_name, self._make_query(entity, self.right), self)
        elif one_to_many:
            target = database.get_namespace(self.left.namespace)
            reference = Reference(target, self.left.model_name, self.required, self.property_name)
            entity.add_reference(self.property_name, reference, self)
        elif side is RelationshipSide.LEFT:
            target = database.get_namespace(self.right.namespace)
            references = ReferenceList(target, self.right.model_name, self.required, self.property_name)
            entity.add_reference(self.property_name, references, self)
        else:
            entity.add_query(self.query_name, self._make_query(entity, self.left), self)
        return True

    def get_selector(self, entity_id: str) -> Dict[str, Any]:
        """Selector finding the entities related to ``entity_id`` on the queried side."""
        if self.kind is RelationshipKind.ONE_TO_MANY:
            return {self.property_name: entity_id}
        return {self.property_name: {"$elemMatch": {"$eq": entity_id}}}

    def get_index(self) -> Dict[str, Any]:
        """Mango index on the persisted reference field."""
        name = f"relationship-{self.name}"
        return {
            "index": {"fields": [self.property_name]},
            "name": name,
            "ddoc": name,
            "type": "json",
        }

    def _make_query(self, entity: Entity, target: RelationshipEnd) -> Any:
        relationship = self

        async def query(page: int | None = None, size: int | None = None) -> List[Entity]:
            service = entity.namespace.database.service(target.namespace, target.model_name)
            return await service.find(relationship.get_selector(entity.id), page=page, size=size)

        query.__name__ = self.query_name
        query.__qualname__ = f"{entity.type}.{self.query_name}"
        return query

    def to_definition(self) -> RelationshipDef:
        return self.definition

    def __repr__(self) -> str:
        return f"Relationship({self.name!r}, {self.kind.value}, {self.left.type_name} -> {self.right.type_name})"
