"""Databases, data services and migrations."""

from .database import Database
from .migration import (
    ActionResult,
    AddProperty,
    Migration,
    MigrationAction,
    RemoveProperty,
    UpdateProperty,
)
from .server import DATABASE_NAME_PATTERN, Server
from .services import CollectionService, DataService, SingletonService

__all__ = [
    "Database",
    "Server",
    "DATABASE_NAME_PATTERN",
    "DataService",
    "CollectionService",
    "SingletonService",
    "Migration",
    "MigrationAction",
    "ActionResult",
    "AddProperty",
    "RemoveProperty",
    "UpdateProperty",
]
