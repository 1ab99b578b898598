"""
Property: the read/write/validate pipeline of one entity field.

Write path (``set``):
    computed -> rejected; readonly (bool or predicate of the entity) ->
    rejected; list-ness must match ``multiple``; unless the entity is in
    draft mode the pre-transform value is validated; then, per element:
    property before_write -> type before_write -> encrypt (if encrypted)
    or hash (if hashed) -> stored.

Read path (``get``):
    computed -> evaluated against the entity; otherwise, per element:
    hashed -> stored value as is; encrypted -> decrypted; type after_read
    -> property after_read.

Invariants:
    - A computed property never holds a value and never reaches a document
    - A multiple property always holds a list
    - Hashed values are never transformed on read
    - load()/dump() move persisted values without re-running transforms, so
      a document survives load -> dump unchanged

How to change safely:
    - Keep write-side and read-side hooks symmetric
    - Validation of user values must happen before any transform runs
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Callable

from ..errors import ModelMismatchError, PropertyAccessError, SchemaError, ValidationError
from ..schema.definitions import PropertyDef
from .property_type import PropertyType
from .tools import check_rules, evaluate, is_empty

if TYPE_CHECKING:
    from ..security import Security
    from .entity import Entity

logger = logging.getLogger(__name__)


class Property:
    """Runtime state of one property on one entity.

    Attributes:
        entity: Owning entity
        definition: Property definition
        type: Resolved PropertyType, or None
    """

    def __init__(
        self,
        entity: Entity,
        definition: PropertyDef,
        property_type: PropertyType | None = None,
        security: Security | None = None,
    ) -> None:
        if (definition.hashed or definition.encrypted) and security is None:
            raise SchemaError(
                f"Property '{definition.name}' is hashed or encrypted but no security is configured",
                name=definition.name,
            )
        self.entity = entity
        self.definition = definition
        self.type = property_type
        self.security = security
        self._value: Any = None

        if definition.is_computed:
            return
        default = self.get_default()
        if default is None:
            self._value = [] if definition.multiple else None
        else:
            self._check_multiplicity(default)
            self._value = self._write(default)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def is_computed(self) -> bool:
        return self.definition.is_computed

    @property
    def is_multiple(self) -> bool:
        return self.definition.multiple

    @property
    def stored_value(self) -> Any:
        """Value as held for persistence (after write transforms)."""
        return self._value

    @property
    def model_type(self) -> str | None:
        """Full ``namespace/typeName`` of the nested model, if any."""
        if not self.definition.model:
            return None
        return self.entity.namespace.full_type_name(self.definition.model)

    def get_default(self) -> Any:
        default = self.definition.default
        if default is None:
            return None
        if callable(default):
            return default()
        return copy.deepcopy(default)

    def is_required(self) -> bool:
        return bool(evaluate(self.definition.required, self.entity))

    def is_readonly(self) -> bool:
        return bool(evaluate(self.definition.readonly, self.entity))

    def get_validation_rules(self) -> tuple[Callable[[Any], Any], ...]:
        type_rules = self.type.rules if self.type is not None else ()
        return tuple(type_rules) + tuple(self.definition.rules)

    def get(self) -> Any:
        """Read the value through the read pipeline."""
        if self.is_computed:
            return self.definition.computed(self.entity)
        if self.is_multiple:
            return [self._read(item) for item in self._value]
        return self._read(self._value)

    def set(self, value: Any) -> None:
        """Write a value through the write pipeline.

        Raises:
            PropertyAccessError: If the property is computed or readonly
            ValidationError: If the value is rejected
        """
        if self.is_computed:
            raise PropertyAccessError(f"Property '{self.name}' is computed and cannot be set", self.name)
        if self.is_readonly():
            raise PropertyAccessError(f"Property '{self.name}' is readonly", self.name)
        self._check_multiplicity(value)
        if not self.entity.draft:
            self._check(value)
        self._value = self._write(value)

    def validate(self) -> None:
        """Validate the current value.

        Raises:
            ValidationError: On the first failing check
            ModelMismatchError: If a nested entity has the wrong model
        """
        if self.is_computed:
            return
        value = self._value if self.definition.hashed else self.get()
        if self.is_required() and is_empty(value):
            raise ValidationError(f"Property '{self.name}' is required", field_name=self.name)
        if value is None or self.definition.hashed:
            return

        for item in value if self.is_multiple else [value]:
            self._check_item(item)
            if self.definition.model:
                item.validate()

    def load(self, raw: Any) -> None:
        """Take a persisted value as is (no transforms, no checks)."""
        if self.is_computed:
            return
        if self.is_multiple and raw is None:
            raw = []
        if self.definition.model:
            if self.is_multiple:
                self._value = [self._load_entity(item) for item in raw]
            else:
                self._value = None if raw is None else self._load_entity(raw)
            return
        self._value = copy.deepcopy(raw)

    def dump(self) -> Any:
        """Persisted form of the value."""
        if self.is_computed:
            return None
        if self.definition.model:
            if self.is_multiple:
                return [item.to_document(nested=True) for item in self._value]
            return None if self._value is None else self._value.to_document(nested=True)
        return copy.deepcopy(self._value)

    def to_string(self) -> str:
        value = self.get()
        if self.definition.to_string is not None:
            return self.definition.to_string(value)
        items = value if self.is_multiple else [value]
        if self.type is not None:
            return ", ".join(self.type.to_string(item) for item in items)
        return ", ".join("" if item is None else str(item) for item in items)

    def nested_entities(self) -> list[Entity]:
        """Entities held by a model property."""
        if not self.definition.model or self._value is None:
            return []
        return list(self._value) if self.is_multiple else [self._value]

    def _check_multiplicity(self, value: Any) -> None:
        if self.is_multiple and not isinstance(value, list):
            raise ValidationError(f"Property '{self.name}' expects a list of values", field_name=self.name)
        if not self.is_multiple and isinstance(value, list):
            raise ValidationError(f"Property '{self.name}' does not accept a list", field_name=self.name)

    def _check(self, value: Any) -> None:
        if self.is_required() and is_empty(value):
            raise ValidationError(f"Property '{self.name}' is required", field_name=self.name)
        if value is None:
            return
        for item in value if self.is_multiple else [value]:
            self._check_item(item)

    def _check_item(self, item: Any) -> None:
        from .entity import Entity

        if self.definition.model:
            if not isinstance(item, Entity) or item.type != self.model_type:
                actual = item.type if isinstance(item, Entity) else type(item).__name__
                raise ModelMismatchError(self.name, self.model_type, actual)
            return
        if isinstance(item, Entity):
            raise ValidationError(f"Property '{self.name}' does not accept entities", field_name=self.name)
        if item is None:
            return

        result = self.type.validate(item) if self.type is not None else True
        if result is True:
            result = check_rules(item, self.definition.rules)
        if result is not True:
            raise ValidationError(
                f"Invalid value for property '{self.name}': {result}",
                field_name=self.name,
                errors=[result],
            )

    def _write(self, value: Any) -> Any:
        if self.is_multiple:
            return [self._transform_in(item) for item in value]
        return self._transform_in(value)

    def _transform_in(self, value: Any) -> Any:
        if value is None:
            return None
        if self.definition.before_write is not None:
            value = self.definition.before_write(value)
        if self.type is not None:
            value = self.type.before_write(value)
        if self.definition.encrypted:
            return self.security.encrypt(value)
        if self.definition.hashed:
            return self.security.hash(value)
        return value

    def _read(self, value: Any) -> Any:
        if value is None or self.definition.hashed:
            return value
        if self.definition.encrypted:
            value = self.security.decrypt(value)
        if self.type is not None:
            value = self.type.after_read(value)
        if self.definition.after_read is not None:
            value = self.definition.after_read(value)
        return value

    def _load_entity(self, doc: Any) -> Entity:
        from .entity import Entity

        if isinstance(doc, Entity):
            return doc
        nested = self.entity.namespace.create_nested(self.definition.model)
        nested.load_document(doc)
        return nested

    def __repr__(self) -> str:
        return f"Property({self.entity.type}.{self.name})"
