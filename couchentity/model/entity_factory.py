"""Builds entities from their model definition."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .attachment import Attachment
from .entity import Entity
from .property import Property

if TYPE_CHECKING:
    from ..security import Security
    from .namespace import Namespace

logger = logging.getLogger(__name__)


class EntityFactory:
    """Creates entities of one model.

    Properties get their resolved type and the security configuration passed
    explicitly; relationships of the owning database are applied to every
    entity created.
    """

    def __init__(self, namespace: Namespace, type_name: str, security: Optional[Security] = None) -> None:
        self.namespace = namespace
        self.model = namespace.get_model(type_name)
        self.security = security if security is not None else namespace.security

    def create(self, entity_id: Optional[str] = None) -> Entity:
        entity = Entity(self.namespace, self.model, entity_id)
        self.populate(entity)
        return entity

    def populate(self, entity: Entity) -> Entity:
        """(Re)build the field tables of an entity of this model."""
        entity._reset_fields()
        for definition in self.model.properties:
            property_type = self.namespace.get_type(definition.type)
            entity.add_property(Property(entity, definition, property_type, self.security))
        for definition in self.model.attachments:
            entity.add_attachment(Attachment(entity, definition))

        database = self.namespace.database
        if database is not None:
            for relationship in database.relationships.values():
                relationship.implement(entity)
        return entity
