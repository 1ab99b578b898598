"""
Document store backends.

- base: DocumentStore / StoreServer protocols and store errors
- memory: in-process store for tests and local development
- couchdb: CouchDB over HTTP (httpx)
"""

from .base import (
    Document,
    DocumentConflictError,
    DocumentNotFoundError,
    DocumentStore,
    StoreConnectionError,
    StoreError,
    StoreServer,
)
from .couchdb import CouchDbStore, CouchDbStoreServer
from .memory import InMemoryDocumentStore, InMemoryStoreServer, match_selector

__all__ = [
    "Document",
    "DocumentStore",
    "StoreServer",
    "StoreError",
    "StoreConnectionError",
    "DocumentNotFoundError",
    "DocumentConflictError",
    "InMemoryDocumentStore",
    "InMemoryStoreServer",
    "CouchDbStore",
    "CouchDbStoreServer",
    "match_selector",
]
