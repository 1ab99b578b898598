"""
Namespace: a named group of models.

Entity ids and document ``type`` fields are prefixed with the namespace name.
A namespace can be used on its own (entities without persistence or
relationships) or registered in a Database, which provides the services,
relationships, property types and security used by its entities.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from ..errors import SchemaError
from ..schema.definitions import ModelDef, NamespaceDef, ServiceLevel
from .property_type import STANDARD_TYPES, PropertyType

if TYPE_CHECKING:
    from ..database.database import Database
    from ..database.services import DataService
    from ..security import Security
    from .entity import Entity
    from .entity_factory import EntityFactory

logger = logging.getLogger(__name__)


class Namespace:
    """Registry of the models of one namespace."""

    def __init__(
        self,
        name: str,
        title: str = "",
        description: str = "",
        models: Iterable[ModelDef] = (),
        database: Optional[Database] = None,
        security: Optional[Security] = None,
    ) -> None:
        if not name or "/" in name:
            raise SchemaError(f"Invalid namespace name '{name}'", name=name)
        self.name = name
        self.title = title
        self.description = description
        self.database = database
        self._security = security
        self.models: Dict[str, ModelDef] = {}
        for model in models:
            self.use_model(model)

    @property
    def security(self) -> Optional[Security]:
        if self._security is not None:
            return self._security
        return self.database.security if self.database is not None else None

    def use_model(self, model: ModelDef) -> None:
        """Register a model.

        Raises:
            SchemaError: If the model is already registered or a field name
                collides with an Entity attribute
        """
        from .entity import Entity

        if model.type_name in self.models:
            raise SchemaError(f"Model '{model.type_name}' already registered in '{self.name}'", name=model.type_name)
        clashes = sorted(set(model.get_field_names()) & Entity.reserved_names())
        if clashes:
            raise SchemaError(
                f"Model '{self.name}/{model.type_name}' uses reserved field name(s) {clashes}",
                name=model.type_name,
            )
        self.models[model.type_name] = model

    def is_registered(self, type_name: str) -> bool:
        return type_name in self.models

    def get_model(self, type_name: str) -> ModelDef:
        model = self.models.get(type_name)
        if model is None:
            raise SchemaError(f"Model '{type_name}' not registered in '{self.name}'", name=type_name)
        return model

    def get_type(self, type_ref: Any) -> PropertyType | None:
        """Resolve a property type given as instance, subclass or name.

        Raises:
            SchemaError: If a type name is not registered
        """
        if type_ref is None or isinstance(type_ref, PropertyType):
            return type_ref
        if isinstance(type_ref, type) and issubclass(type_ref, PropertyType):
            return type_ref()
        registry: Dict[str, Any] = self.database.types if self.database is not None else STANDARD_TYPES
        found = registry.get(type_ref)
        if found is None:
            raise SchemaError(f"Type '{type_ref}' is not defined in this schema", name=str(type_ref))
        return found() if isinstance(found, type) else found

    def full_type_name(self, model_ref: str) -> str:
        """``"typeName"`` -> ``"<this namespace>/typeName"``; full names unchanged."""
        return model_ref if "/" in model_ref else f"{self.name}/{model_ref}"

    def resolve(self, model_ref: str) -> tuple[Namespace, str]:
        namespace_name, _, type_name = self.full_type_name(model_ref).partition("/")
        if namespace_name == self.name:
            return self, type_name
        if self.database is None:
            raise SchemaError(f"Cannot resolve '{model_ref}' outside a database", name=model_ref)
        return self.database.get_namespace(namespace_name), type_name

    def get_factory(self, type_name: str, security: Optional[Security] = None) -> EntityFactory:
        from .entity_factory import EntityFactory

        return EntityFactory(self, type_name, security)

    def create_entity(self, type_name: str, entity_id: Optional[str] = None) -> Entity:
        return self.get_factory(type_name).create(entity_id)

    def create_nested(self, model_ref: str) -> Entity:
        namespace, type_name = self.resolve(model_ref)
        return namespace.create_entity(type_name)

    def get_service(self, type_name: str) -> DataService:
        """Data service of a model.

        Raises:
            SchemaError: Outside a database, or for models without service
        """
        model = self.get_model(type_name)
        if model.service is ServiceLevel.NONE:
            raise SchemaError(f"Model '{self.name}/{type_name}' has no data service", name=type_name)
        if self.database is None:
            raise SchemaError(f"Namespace '{self.name}' is not bound to a database", name=self.name)
        return self.database.service(self.name, type_name)

    def to_definition(self) -> NamespaceDef:
        return NamespaceDef(models=tuple(self.models.values()), title=self.title, description=self.description)

    def __repr__(self) -> str:
        return f"Namespace({self.name!r}, models={sorted(self.models)})"
