"""
couchentity - Entity modeling over revision-controlled document stores.

Declare models in a versioned Schema, then work with entities whose
properties hash, encrypt, validate and transform values on the way in and
out, with references resolved lazily and relationships wired automatically.

Example:
    >>> from couchentity import ModelDef, NamespaceDef, Schema, Server, prop
    >>> from couchentity.store import InMemoryStoreServer
    >>>
    >>> User = ModelDef(
    ...     type_name="user",
    ...     properties=(
    ...         prop("username", "Text", required=True),
    ...         prop("password", hashed=True),
    ...     ),
    ... )
    >>> schema = Schema(version=1, namespaces={"security": NamespaceDef(models=(User,))})
    >>>
    >>> server = Server(InMemoryStoreServer())
    >>> await server.create("app", schema)
    >>> db = await server.use("app", schema)
    >>> user = db.service("security", "user").create()
    >>> user.username = "jdoe"
    >>> await user.save()

Invariants:
    - Stored documents are plain CouchDB documents
    - Schema changes go through migrations

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import Settings, setup_logging
from .database import (
    ActionResult,
    AddProperty,
    CollectionService,
    Database,
    DataService,
    Migration,
    MigrationAction,
    RemoveProperty,
    Server,
    SingletonService,
    UpdateProperty,
)
from .errors import (
    CouchEntityError,
    MigrationError,
    ModelMismatchError,
    PropertyAccessError,
    ReferenceFormatError,
    ReferenceListError,
    SchemaError,
    SecurityError,
    UnknownFieldError,
    ValidationError,
)
from .model import (
    Attachment,
    Entity,
    EntityFactory,
    Namespace,
    Property,
    PropertyType,
    Reference,
    ReferenceList,
    Relationship,
)
from .schema import (
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
from .security import Security

__all__ = [
    # Version
    "__version__",
    # Schema definitions
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
    # Runtime model
    "Attachment",
    "Entity",
    "EntityFactory",
    "Namespace",
    "Property",
    "PropertyType",
    "Reference",
    "ReferenceList",
    "Relationship",
    # Databases
    "Server",
    "Database",
    "DataService",
    "CollectionService",
    "SingletonService",
    # Migrations
    "Migration",
    "MigrationAction",
    "ActionResult",
    "AddProperty",
    "RemoveProperty",
    "UpdateProperty",
    # Configuration
    "Settings",
    "Security",
    "setup_logging",
    # Errors
    "CouchEntityError",
    "ValidationError",
    "ModelMismatchError",
    "PropertyAccessError",
    "UnknownFieldError",
    "ReferenceFormatError",
    "ReferenceListError",
    "SchemaError",
    "MigrationError",
    "SecurityError",
]
