"""
Lazy references to other entities.

A Reference holds the id of one target entity and resolves it on demand;
a ReferenceList holds an ordered, duplicate-free list of ids with a parallel
cache of resolved entities.

Invariants:
    - An id is accepted only if its segments match the target namespace,
      type name and service level (``ns/type`` for singletons,
      ``ns/type/key`` otherwise)
    - A resolved entity is fetched once and cached until forced
    - ``id_list`` and ``entity_list`` always have the same length
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator, List, Optional

from ..errors import ReferenceFormatError, ReferenceListError, ValidationError
from ..schema.definitions import ServiceLevel

if TYPE_CHECKING:
    from .entity import Entity
    from .namespace import Namespace

logger = logging.getLogger(__name__)


class _ReferenceTarget:
    """Target model of a reference and the id rules that follow from it."""

    def __init__(self, namespace: Namespace, type_name: str, required: bool = False, name: str | None = None) -> None:
        self.namespace = namespace
        self.type_name = type_name
        self.required = required
        self.name = name or type_name

    @property
    def target(self) -> str:
        return f"{self.namespace.name}/{self.type_name}"

    def resolve_id(self, value: Any) -> str:
        """Return the id of an entity or id string aimed at this target.

        Raises:
            ReferenceFormatError: If the value cannot reference this target
        """
        from .entity import Entity

        if isinstance(value, Entity):
            if value.namespace.name != self.namespace.name or value.type_name != self.type_name:
                raise ReferenceFormatError(
                    f"Reference '{self.name}' expects an entity of '{self.target}', got '{value.type}'",
                    value=value.id,
                    target=self.target,
                )
            return value.id
        if not isinstance(value, str):
            raise ReferenceFormatError(
                f"Invalid id for reference '{self.name}': not a string",
                value=value,
                target=self.target,
            )

        model = self.namespace.get_model(self.type_name)
        parts = value.split("/")
        expected = 2 if model.service is ServiceLevel.SINGLETON else 3
        if len(parts) != expected or not all(parts):
            raise ReferenceFormatError(
                f"Invalid id format '{value}' for reference '{self.name}'",
                value=value,
                target=self.target,
            )
        if parts[0] != self.namespace.name:
            raise ReferenceFormatError(
                f"Invalid namespace in id '{value}', expected '{self.namespace.name}'",
                value=value,
                target=self.target,
            )
        if parts[1] != self.type_name:
            raise ReferenceFormatError(
                f"Invalid type in id '{value}', expected '{self.type_name}'",
                value=value,
                target=self.target,
            )
        return value

    async def fetch(self, entity_id: str) -> Entity:
        service = self.namespace.get_service(self.type_name)
        logger.debug(f"Resolving reference {entity_id}", extra={"reference": self.name})
        return await service.get(entity_id)


class Reference(_ReferenceTarget):
    """Single reference to an entity of ``namespace/type_name``.

    Example:
        >>> project.company = company          # or company.id
        >>> resolved = await project.company.get()
    """

    def __init__(self, namespace: Namespace, type_name: str, required: bool = False, name: str | None = None) -> None:
        super().__init__(namespace, type_name, required, name)
        self.id: Optional[str] = None
        self.entity: Optional[Entity] = None

    def set(self, value: Any) -> None:
        """Point the reference at an entity, an id, or nothing (None)."""
        from .entity import Entity

        if value is None:
            self.id = None
            self.entity = None
            return
        entity_id = self.resolve_id(value)
        self.entity = value if isinstance(value, Entity) else None
        self.id = entity_id

    async def get(self, force: bool = False) -> Optional[Entity]:
        """Resolve the target, fetching it at most once unless forced."""
        if self.id is None:
            return None
        if self.entity is None or force:
            self.entity = await self.fetch(self.id)
        return self.entity

    def validate(self) -> None:
        if self.required and not self.id:
            raise ValidationError(f"Reference '{self.name}' is required", field_name=self.name)

    def __repr__(self) -> str:
        return f"Reference({self.target}, id={self.id!r})"


class ReferenceList(_ReferenceTarget):
    """Ordered list of references to entities of ``namespace/type_name``.

    Example:
        >>> project.userList.add(user)
        >>> users = await project.userList.get_all()
    """

    def __init__(self, namespace: Namespace, type_name: str, required: bool = False, name: str | None = None) -> None:
        super().__init__(namespace, type_name, required, name)
        self.id_list: List[str] = []
        self.entity_list: List[Optional[Entity]] = []

    def add(self, value: Any) -> str:
        """Append an entity or id.

        Raises:
            ReferenceFormatError: If the value cannot reference this target
            ReferenceListError: If the id is already present
        """
        from .entity import Entity

        entity_id = self.resolve_id(value)
        if entity_id in self.id_list:
            raise ReferenceListError(f"Reference '{entity_id}' already in '{self.name}'", entity_id)
        self.id_list.append(entity_id)
        self.entity_list.append(value if isinstance(value, Entity) else None)
        return entity_id

    def remove(self, value: Any) -> None:
        """Remove an entity or id.

        Raises:
            ReferenceListError: If the id is not present
        """
        entity_id = self.resolve_id(value)
        if entity_id not in self.id_list:
            raise ReferenceListError(f"Reference '{entity_id}' not found in '{self.name}'", entity_id)
        index = self.id_list.index(entity_id)
        del self.id_list[index]
        del self.entity_list[index]

    def replace(self, values: List[Any]) -> None:
        """Replace the whole list; nothing changes if any value is rejected."""
        if values is None:
            values = []
        if not isinstance(values, list):
            raise ReferenceFormatError(
                f"Reference list '{self.name}' expects a list", value=values, target=self.target
            )
        staged = ReferenceList(self.namespace, self.type_name, self.required, self.name)
        for value in values:
            staged.add(value)
        self.id_list = staged.id_list
        self.entity_list = staged.entity_list

    def clear(self) -> None:
        self.id_list = []
        self.entity_list = []

    async def get_all(self, force: bool = False) -> List[Entity]:
        """Resolve every entry not yet cached (or all, when forced)."""
        for index, entity_id in enumerate(self.id_list):
            if self.entity_list[index] is None or force:
                self.entity_list[index] = await self.fetch(entity_id)
        return list(self.entity_list)

    async def get(self, entity_id: str, force: bool = False) -> Entity:
        """Resolve one entry by id.

        Raises:
            ReferenceListError: If the id is not present
        """
        if entity_id not in self.id_list:
            raise ReferenceListError(f"Reference '{entity_id}' not found in '{self.name}'", entity_id)
        index = self.id_list.index(entity_id)
        if self.entity_list[index] is None or force:
            self.entity_list[index] = await self.fetch(entity_id)
        return self.entity_list[index]

    def validate(self) -> None:
        if self.required and not self.id_list:
            raise ValidationError(f"Reference list '{self.name}' is required", field_name=self.name)

    @property
    def ids(self) -> List[str]:
        return list(self.id_list)

    def __len__(self) -> int:
        return len(self.id_list)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self.id_list))

    def __contains__(self, value: Any) -> bool:
        from .entity import Entity

        entity_id = value.id if isinstance(value, Entity) else value
        return entity_id in self.id_list

    def __repr__(self) -> str:
        return f"ReferenceList({self.target}, ids={self.id_list!r})"
