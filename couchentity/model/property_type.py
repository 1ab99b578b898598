"""
Property types.

A PropertyType bundles the rules and transforms shared by every property
declared with that type. Custom types subclass PropertyType and override
the hooks; they are registered by name through ``Schema.types``.

Example:
    >>> class Capitalized(PropertyType):
    ...     name = "Capitalized"
    ...     def before_write(self, value):
    ...         return value.upper() if isinstance(value, str) else value
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, ClassVar

from .tools import check_rules


class PropertyType:
    """Base property type: no rules, identity transforms."""

    name: ClassVar[str] = "Any"
    content_type: ClassVar[str] = "application/json"

    def __init__(self, rules: tuple[Callable[[Any], Any], ...] = ()) -> None:
        self.rules: tuple[Callable[[Any], Any], ...] = tuple(self.default_rules()) + tuple(rules)

    def default_rules(self) -> tuple[Callable[[Any], Any], ...]:
        return ()

    def validate(self, value: Any) -> bool | str:
        """Run this type's rules against a value."""
        return check_rules(value, self.rules)

    def before_write(self, value: Any) -> Any:
        return value

    def after_read(self, value: Any) -> Any:
        return value

    def to_string(self, value: Any) -> str:
        return "" if value is None else str(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TextPropertyType(PropertyType):
    name = "Text"
    content_type = "text/plain"

    def default_rules(self) -> tuple[Callable[[Any], Any], ...]:
        return (lambda v: isinstance(v, str) or "Not a valid text",)


class NumberPropertyType(PropertyType):
    name = "Number"

    def default_rules(self) -> tuple[Callable[[Any], Any], ...]:
        return (lambda v: _is_number(v) or "Not a valid number",)


class IntegerPropertyType(PropertyType):
    name = "Integer"

    def default_rules(self) -> tuple[Callable[[Any], Any], ...]:
        return (lambda v: (isinstance(v, int) and not isinstance(v, bool)) or "Not a valid integer",)


class BooleanPropertyType(PropertyType):
    name = "Boolean"

    def default_rules(self) -> tuple[Callable[[Any], Any], ...]:
        return (lambda v: isinstance(v, bool) or "Not a valid boolean",)

    def to_string(self, value: Any) -> str:
        if value is None:
            return ""
        return "true" if value else "false"


class DateTimePropertyType(PropertyType):
    """Datetime in the entity, epoch milliseconds (UTC) in the document.

    Sub-millisecond precision is truncated on write: a value read back has
    its microseconds rounded down to whole milliseconds.
    """

    name = "DateTime"

    def default_rules(self) -> tuple[Callable[[Any], Any], ...]:
        return (lambda v: isinstance(v, datetime) or "Not a valid date",)

    def before_write(self, value: Any) -> Any:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return int(value.timestamp() * 1000)
        return value

    def after_read(self, value: Any) -> Any:
        if _is_number(value):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        return value

    def to_string(self, value: Any) -> str:
        return value.isoformat() if isinstance(value, datetime) else super().to_string(value)


STANDARD_TYPES: dict[str, type[PropertyType]] = {
    t.name: t
    for t in (
        TextPropertyType,
        NumberPropertyType,
        IntegerPropertyType,
        BooleanPropertyType,
        DateTimePropertyType,
    )
}
