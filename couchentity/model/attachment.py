"""
Entity attachments.

Files are stored as document attachments keyed ``"{attachmentName}|{filename}"``.
A file is either a stub (metadata only, data still in the store) or loaded
(data held in memory); stub data is fetched lazily with get_data().
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import SchemaError, ValidationError
from ..schema.definitions import AttachmentDef

if TYPE_CHECKING:
    from .entity import Entity

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"


class AttachmentFile:
    """One file of an attachment slot."""

    def __init__(
        self,
        attachment: Attachment,
        filename: str,
        content_type: str,
        size: int = 0,
        data: Optional[bytes] = None,
    ) -> None:
        self.attachment = attachment
        self.filename = filename
        self.content_type = content_type
        self.size = len(data) if data is not None else size
        self.data = data

    @property
    def key(self) -> str:
        return f"{self.attachment.name}{KEY_SEPARATOR}{self.filename}"

    @property
    def is_stub(self) -> bool:
        return self.data is None

    async def get_data(self, force: bool = False) -> bytes:
        """Return the file content, fetching it from the store once."""
        if self.data is None or force:
            entity = self.attachment.entity
            database = entity.namespace.database
            if database is None:
                raise SchemaError(f"Cannot fetch attachment {self.key}: entity is not bound to a database")
            self.data = await database.store.get_attachment(entity.id, self.key)
            self.size = len(self.data)
        return self.data

    def to_document(self) -> Dict[str, Any]:
        if self.data is None:
            return {"content_type": self.content_type, "length": self.size, "stub": True}
        return {
            "content_type": self.content_type,
            "data": base64.b64encode(self.data).decode("ascii"),
        }

    def __repr__(self) -> str:
        return f"AttachmentFile({self.key!r}, stub={self.is_stub})"


class Attachment:
    """Attachment slot of an entity, constrained by its AttachmentDef."""

    def __init__(self, entity: Entity, definition: AttachmentDef) -> None:
        self.entity = entity
        self.definition = definition
        self.files: Dict[str, AttachmentFile] = {}

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def count(self) -> int:
        return len(self.files)

    @property
    def filenames(self) -> List[str]:
        return list(self.files)

    def define_stub(self, filename: str, content_type: str, size: int = 0) -> AttachmentFile:
        """Declare a file already present in the store."""
        self._check(filename, content_type, size)
        stub = AttachmentFile(self, filename, content_type, size=size)
        self.files[filename] = stub
        return stub

    def add(self, filename: str, content_type: str, data: bytes | str) -> AttachmentFile:
        """Add (or replace) a file with its content.

        Raises:
            ValidationError: If the content type, size or file count is not allowed
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._check(filename, content_type, len(data))
        file = AttachmentFile(self, filename, content_type, data=data)
        self.files[filename] = file
        return file

    def load(self, filename: str, data: bytes) -> AttachmentFile:
        """Attach content to an existing stub."""
        file = self.files.get(filename)
        if file is None:
            raise ValidationError(f"Attachment '{self.name}' has no file '{filename}'", field_name=self.name)
        file.data = data
        file.size = len(data)
        return file

    def remove(self, filename: str) -> None:
        if filename not in self.files:
            raise ValidationError(f"Attachment '{self.name}' has no file '{filename}'", field_name=self.name)
        del self.files[filename]

    def get_stub(self, filename: str) -> Optional[AttachmentFile]:
        return self.files.get(filename)

    def clean(self) -> None:
        self.files.clear()

    async def refresh(self) -> None:
        """Reload file stubs from the stored document, dropping local changes."""
        database = self.entity.namespace.database
        if database is None:
            raise SchemaError(f"Cannot refresh attachment '{self.name}': entity is not bound to a database")
        doc = await database.store.get(self.entity.id)
        self.load_entries(group_attachments(doc.get("_attachments") or {}).get(self.name, {}))

    def load_entries(self, entries: Dict[str, Dict[str, Any]]) -> None:
        """Replace files with stored entries keyed by filename (no checks)."""
        self.files = {}
        for filename, entry in entries.items():
            content_type = entry.get("content_type", "application/octet-stream")
            if entry.get("data") is not None:
                data = base64.b64decode(entry["data"])
                self.files[filename] = AttachmentFile(self, filename, content_type, data=data)
            else:
                self.files[filename] = AttachmentFile(self, filename, content_type, size=entry.get("length", 0))

    def validate(self) -> None:
        if self.definition.required and not self.files:
            raise ValidationError(f"Attachment '{self.name}' is required", field_name=self.name)

    def to_document(self) -> Dict[str, Dict[str, Any]]:
        return {file.key: file.to_document() for file in self.files.values()}

    def _check(self, filename: str, content_type: str, size: int) -> None:
        definition = self.definition
        if not filename or KEY_SEPARATOR in filename:
            raise ValidationError(f"Invalid file name '{filename}'", field_name=self.name)
        if definition.filters and content_type not in definition.filters:
            raise ValidationError(
                f"Content type '{content_type}' not allowed for attachment '{self.name}'",
                field_name=self.name,
            )
        if definition.size and size > definition.size * 1024:
            raise ValidationError(
                f"File '{filename}' exceeds {definition.size} kB for attachment '{self.name}'",
                field_name=self.name,
            )
        others = [name for name in self.files if name != filename]
        if not definition.multiple and others:
            raise ValidationError(f"Attachment '{self.name}' accepts a single file", field_name=self.name)
        if definition.multiple and definition.limit and len(others) >= definition.limit:
            raise ValidationError(
                f"Attachment '{self.name}' accepts at most {definition.limit} files",
                field_name=self.name,
            )

    def __repr__(self) -> str:
        return f"Attachment({self.name!r}, files={self.filenames})"


def group_attachments(entries: Dict[str, Any]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Split ``name|filename`` attachment keys into {name: {filename: entry}}."""
    grouped: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for key, entry in entries.items():
        name, separator, filename = key.partition(KEY_SEPARATOR)
        if not separator:
            logger.debug(f"Ignoring attachment without slot name: {key}")
            continue
        grouped.setdefault(name, {})[filename] = entry
    return grouped
