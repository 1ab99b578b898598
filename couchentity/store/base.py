"""
Base protocols and errors for the document store abstraction.

The entity layer never talks HTTP or touches storage directly. Everything it
needs from a CouchDB-shaped, revision-controlled document store is captured
by two protocols:

- DocumentStore: operations on one database (get/put/bulk/find/indexes)
- StoreServer: operations on the server (list/create/delete/open databases)

Results are plain dicts shaped like CouchDB responses
(``{"ok": True, "id": ..., "rev": ...}``, ``{"docs": [...]}``, ...).

Invariants:
    - Every successful write returns the new revision
    - A write carrying a stale ``_rev`` fails with DocumentConflictError
    - Deleted documents are tombstones: get() raises DocumentNotFoundError
    - create_index() is idempotent

How to change safely:
    - Protocol changes require updating every implementation
    - Keep result shapes identical to CouchDB so the HTTP store stays a thin
      pass-through
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

Document = Dict[str, Any]


class StoreError(Exception):
    """Base exception for document store operations.

    Attributes:
        status: HTTP-like status code, when the store reports one
        reason: Store-provided reason string
    """

    def __init__(self, message: str, status: Optional[int] = None, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class StoreConnectionError(StoreError):
    """Store is unreachable or the transport failed."""
    pass


class DocumentNotFoundError(StoreError):
    """Document or database does not exist (or was deleted)."""

    def __init__(self, message: str, reason: Optional[str] = "missing") -> None:
        super().__init__(message, status=404, reason=reason)


class DocumentConflictError(StoreError):
    """Write rejected because the revision is stale or the document exists."""

    def __init__(self, message: str, reason: Optional[str] = "Document update conflict.") -> None:
        super().__init__(message, status=409, reason=reason)


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for one revision-controlled document database."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Database name."""
        ...

    @abstractmethod
    async def get(self, doc_id: str, *, attachments: bool = False, revs_info: bool = False) -> Document:
        """Fetch a document.

        Args:
            doc_id: Document id
            attachments: Include attachment data (base64) instead of stubs
            revs_info: Include the ``_revs_info`` revision list

        Raises:
            DocumentNotFoundError: If missing or deleted
        """
        ...

    @abstractmethod
    async def put(self, doc: Document) -> Document:
        """Create or update a document; returns ``{ok, id, rev}``.

        Raises:
            DocumentConflictError: If ``_rev`` is stale
        """
        ...

    @abstractmethod
    async def bulk_docs(self, docs: List[Document]) -> List[Document]:
        """Write many documents, non-transactionally.

        Returns:
            One result per input document, either ``{ok, id, rev}`` or
            ``{id, error, reason}``
        """
        ...

    @abstractmethod
    async def remove(self, doc_id: str, rev: str) -> Document:
        """Delete a document, leaving a tombstone; returns ``{ok, id, rev}``."""
        ...

    @abstractmethod
    async def find(
        self,
        selector: Dict[str, Any],
        *,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> Document:
        """Run a Mango query; returns ``{"docs": [...]}``."""
        ...

    @abstractmethod
    async def create_index(self, index: Dict[str, Any]) -> Document:
        """Create a Mango index; returns ``{result: "created"|"exists", ...}``."""
        ...

    @abstractmethod
    async def get_attachment(self, doc_id: str, name: str) -> bytes:
        """Fetch raw attachment data."""
        ...

    @abstractmethod
    async def all_docs(
        self,
        *,
        start_key: Optional[str] = None,
        end_key: Optional[str] = None,
        keys: Optional[List[str]] = None,
        include_docs: bool = False,
    ) -> Document:
        """List documents by id; returns ``{"rows": [...]}`` sorted by id."""
        ...

    @abstractmethod
    async def info(self) -> Document:
        """Database information (name, document count, ...)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...


@runtime_checkable
class StoreServer(Protocol):
    """Protocol for a server hosting document databases."""

    @abstractmethod
    async def is_up(self) -> bool:
        ...

    @abstractmethod
    async def info(self) -> Document:
        ...

    @abstractmethod
    async def list_databases(self) -> List[str]:
        ...

    @abstractmethod
    async def create_database(self, name: str) -> None:
        """Create a database.

        Raises:
            DocumentConflictError: If it already exists
        """
        ...

    @abstractmethod
    async def delete_database(self, name: str) -> None:
        """Delete a database.

        Raises:
            DocumentNotFoundError: If it does not exist
        """
        ...

    @abstractmethod
    async def open_database(self, name: str) -> DocumentStore:
        """Return a store bound to an existing database.

        Raises:
            DocumentNotFoundError: If it does not exist
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
