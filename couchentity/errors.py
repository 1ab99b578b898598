"""
Error types for couchentity.

This module defines the exceptions raised by the entity layer:
- CouchEntityError: Base exception
- ValidationError: Property, reference or model validation failures
- ModelMismatchError: Nested entity of the wrong model
- PropertyAccessError: Write to a computed or readonly property
- UnknownFieldError: Unknown field on an entity
- ReferenceFormatError: Malformed reference id or foreign entity
- ReferenceListError: Duplicate or missing reference list entry
- SchemaError: Schema definition or wiring errors
- MigrationError: Migration precondition or execution failures
- SecurityError: Hashing/encryption configuration errors

Errors raised by the persistence layer live in ``couchentity.store.base``
and are propagated unchanged.

Invariants:
    - All errors inherit from CouchEntityError
    - Errors carry a stable ``code`` for programmatic handling
    - Error messages name the field, type or version involved
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class CouchEntityError(Exception):
    """Base exception for all couchentity errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "COUCHENTITY_ERROR"
        self.details = details or {}


class ValidationError(CouchEntityError):
    """Validation failed.

    Raised when:
    - A required property, reference or attachment is empty
    - A type rule or property rule rejects a value
    - A value does not match the property's multiplicity
    - A model-level rule rejects the entity
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class ModelMismatchError(ValidationError):
    """A nested model property holds an entity of another model."""

    def __init__(self, field_name: str, expected: str, actual: str | None) -> None:
        super().__init__(
            f"Property '{field_name}' expects an entity of model '{expected}', got '{actual}'",
            field_name=field_name,
        )
        self.code = "MODEL_MISMATCH"
        self.details.update({"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class PropertyAccessError(CouchEntityError):
    """Write rejected by a computed or readonly property."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="PROPERTY_ACCESS_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class UnknownFieldError(CouchEntityError):
    """Unknown field on an entity.

    Includes suggestions for similar field names.

    Example:
        >>> raise UnknownFieldError("emial", "crm/user", ["email", "name"])
        UnknownFieldError: Unknown field 'emial' on 'crm/user'. Did you mean: email?
    """

    def __init__(
        self,
        field_name: str,
        type_name: str,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        msg = f"Unknown field '{field_name}' on '{type_name}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(
            msg,
            code="UNKNOWN_FIELD",
            details={
                "field": field_name,
                "type_name": type_name,
                "suggestions": suggestions or [],
            },
        )
        self.field_name = field_name
        self.type_name = type_name
        self.suggestions = suggestions or []


class ReferenceFormatError(CouchEntityError):
    """Reference id or entity does not match the reference target.

    Raised when:
    - The value is neither an entity, an id string nor None
    - The id has the wrong number of segments for the target service level
    - The id or entity belongs to another namespace or type
    """

    def __init__(self, message: str, value: Any = None, target: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="REFERENCE_FORMAT_ERROR",
            details={"value": repr(value), "target": target},
        )
        self.value = value
        self.target = target


class ReferenceListError(CouchEntityError):
    """Duplicate add or missing id in a reference list."""

    def __init__(self, message: str, reference_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="REFERENCE_LIST_ERROR",
            details={"id": reference_id},
        )
        self.reference_id = reference_id


class SchemaError(CouchEntityError):
    """Schema-related error.

    Raised when:
    - A namespace or model is registered twice
    - A property type or model name cannot be resolved
    - A database name is invalid
    - An entity of a model without service is persisted
    """

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(message, code="SCHEMA_ERROR", details={"name": name})
        self.name = name


class MigrationError(CouchEntityError):
    """Migration precondition failed or a migration step failed."""

    def __init__(
        self,
        message: str,
        from_version: Optional[int] = None,
        to_version: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="MIGRATION_ERROR",
            details={"from_version": from_version, "to_version": to_version},
        )
        self.from_version = from_version
        self.to_version = to_version


class SecurityError(CouchEntityError):
    """Encryption requested without a usable secret key, or bad ciphertext."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SECURITY_ERROR")
