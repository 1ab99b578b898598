"""
In-memory document store implementation for testing.

This module provides a CouchDB-compatible store held in process memory for:
- Unit tests
- Integration tests
- Local development without a CouchDB server

It implements revision control the way CouchDB does (``N-<hash>`` revisions,
stale revisions rejected, deletions kept as tombstones), inline and stub
attachments, idempotent indexes and the subset of Mango selectors used by
the entity layer.

Invariants:
    - All data is lost on process exit
    - Documents handed in or out are deep copies; callers never share state
      with the store
    - Mutations are serialised with an asyncio lock

How to change safely:
    - Keep results shaped exactly like the CouchDB HTTP API
    - Add selector operators in _match_condition together with a test
"""

from __future__ import annotations

import asyncio
import base64
import copy
import hashlib
import json
import logging
import re
import uuid
from typing import Any, Dict, List, Optional

from .base import (
    Document,
    DocumentConflictError,
    DocumentNotFoundError,
    StoreError,
)

logger = logging.getLogger(__name__)

DESIGN_PREFIX = "_design/"


def _lookup(doc: Any, path: str) -> tuple[bool, Any]:
    """Resolve a dotted field path; returns (present, value)."""
    current = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _comparable(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return True
    return isinstance(a, str) and isinstance(b, str)


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def _match_condition(present: bool, value: Any, condition: Any) -> bool:
    if not _is_operator_dict(condition):
        return present and value == condition

    for op, arg in condition.items():
        if op == "$eq":
            ok = present and value == arg
        elif op == "$ne":
            ok = present and value != arg
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = present and _comparable(value, arg) and {
                "$gt": lambda: value > arg,
                "$gte": lambda: value >= arg,
                "$lt": lambda: value < arg,
                "$lte": lambda: value <= arg,
            }[op]()
        elif op == "$in":
            ok = present and value in arg
        elif op == "$nin":
            ok = present and value not in arg
        elif op == "$exists":
            ok = present == bool(arg)
        elif op == "$all":
            ok = present and isinstance(value, list) and all(item in value for item in arg)
        elif op == "$size":
            ok = present and isinstance(value, list) and len(value) == arg
        elif op == "$elemMatch":
            ok = present and isinstance(value, list) and any(_match_element(item, arg) for item in value)
        elif op == "$regex":
            ok = present and isinstance(value, str) and re.search(arg, value) is not None
        elif op == "$not":
            ok = not _match_condition(present, value, arg)
        else:
            raise StoreError(f"Invalid operator: {op}", status=400, reason="invalid_operator")
        if not ok:
            return False
    return True


def _match_element(item: Any, condition: Any) -> bool:
    if _is_operator_dict(condition) and not any(k in ("$and", "$or", "$nor") for k in condition):
        return _match_condition(True, item, condition)
    if isinstance(item, dict) and isinstance(condition, dict):
        return match_selector(item, condition)
    return item == condition


def match_selector(doc: Document, selector: Dict[str, Any]) -> bool:
    """Evaluate a Mango selector against a document."""
    for key, condition in selector.items():
        if key == "$and":
            if not all(match_selector(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(match_selector(doc, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(match_selector(doc, sub) for sub in condition):
                return False
        elif key == "$not":
            if match_selector(doc, condition):
                return False
        else:
            present, value = _lookup(doc, key)
            if not _match_condition(present, value, condition):
                return False
    return True


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Example:
        >>> store = InMemoryDocumentStore("crm")
        >>> result = await store.put({"_id": "crm/company/1", "name": "Acme"})
        >>> doc = await store.get("crm/company/1")
        >>> doc["_rev"] == result["rev"]
        True
    """

    def __init__(self, name: str = "test") -> None:
        self._name = name
        self._docs: Dict[str, Document] = {}
        self._attachments: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._revisions: Dict[str, List[str]] = {}
        self._indexes: Dict[tuple, Dict[str, Any]] = {}
        self._update_seq = 0
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    async def get(self, doc_id: str, *, attachments: bool = False, revs_info: bool = False) -> Document:
        stored = self._docs.get(doc_id)
        if stored is None:
            raise DocumentNotFoundError(f"Document {doc_id} not found")
        if stored.get("_deleted"):
            raise DocumentNotFoundError(f"Document {doc_id} not found", reason="deleted")

        doc = copy.deepcopy(stored)
        files = self._attachments.get(doc_id) or {}
        if files:
            doc["_attachments"] = {
                name: self._export_attachment(entry, attachments) for name, entry in files.items()
            }
        if revs_info:
            doc["_revs_info"] = [
                {"rev": rev, "status": "available"} for rev in reversed(self._revisions[doc_id])
            ]
        return doc

    async def put(self, doc: Document) -> Document:
        async with self._lock:
            return self._write(doc)

    async def bulk_docs(self, docs: List[Document]) -> List[Document]:
        results: List[Document] = []
        async with self._lock:
            for doc in docs:
                try:
                    results.append(self._write(doc))
                except StoreError as e:
                    results.append({
                        "id": doc.get("_id"),
                        "error": "conflict" if e.status == 409 else "error",
                        "reason": e.reason or str(e),
                    })
        return results

    async def remove(self, doc_id: str, rev: str) -> Document:
        async with self._lock:
            stored = self._docs.get(doc_id)
            if stored is None or stored.get("_deleted"):
                raise DocumentNotFoundError(f"Document {doc_id} not found")
            return self._write({"_id": doc_id, "_rev": rev, "_deleted": True})

    async def find(
        self,
        selector: Dict[str, Any],
        *,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> Document:
        matched = []
        for doc_id in sorted(self._docs):
            stored = self._docs[doc_id]
            if stored.get("_deleted") or doc_id.startswith(DESIGN_PREFIX):
                continue
            if match_selector(stored, selector):
                matched.append(await self.get(doc_id))
        end = None if limit is None else skip + limit
        return {"docs": matched[skip:end]}

    async def create_index(self, index: Dict[str, Any]) -> Document:
        fields = list(index.get("index", {}).get("fields", []))
        name = index.get("name") or "idx-" + hashlib.md5(json.dumps(fields).encode()).hexdigest()
        ddoc = index.get("ddoc") or name
        key = (ddoc, name)
        async with self._lock:
            if key in self._indexes:
                result = "exists"
            else:
                self._indexes[key] = {"ddoc": f"{DESIGN_PREFIX}{ddoc}", "name": name, "fields": fields}
                result = "created"
        logger.debug(f"Index {name} {result}", extra={"db": self._name, "fields": fields})
        return {"result": result, "id": f"{DESIGN_PREFIX}{ddoc}", "name": name}

    async def get_attachment(self, doc_id: str, name: str) -> bytes:
        stored = self._docs.get(doc_id)
        if stored is None or stored.get("_deleted"):
            raise DocumentNotFoundError(f"Document {doc_id} not found")
        entry = (self._attachments.get(doc_id) or {}).get(name)
        if entry is None:
            raise DocumentNotFoundError(f"Document is missing attachment {name}")
        return entry["data"]

    async def all_docs(
        self,
        *,
        start_key: Optional[str] = None,
        end_key: Optional[str] = None,
        keys: Optional[List[str]] = None,
        include_docs: bool = False,
    ) -> Document:
        rows: List[Document] = []
        if keys is not None:
            for key in keys:
                stored = self._docs.get(key)
                if stored is None:
                    rows.append({"key": key, "error": "not_found"})
                elif stored.get("_deleted"):
                    row = {"id": key, "key": key, "value": {"rev": stored["_rev"], "deleted": True}}
                    if include_docs:
                        row["doc"] = None
                    rows.append(row)
                else:
                    rows.append(await self._row(key, include_docs))
        else:
            for doc_id in sorted(self._docs):
                if self._docs[doc_id].get("_deleted"):
                    continue
                if start_key is not None and doc_id < start_key:
                    continue
                if end_key is not None and doc_id > end_key:
                    continue
                rows.append(await self._row(doc_id, include_docs))
        return {"total_rows": self.document_count, "offset": 0, "rows": rows}

    async def info(self) -> Document:
        deleted = sum(1 for doc in self._docs.values() if doc.get("_deleted"))
        return {
            "db_name": self._name,
            "doc_count": len(self._docs) - deleted,
            "doc_del_count": deleted,
            "update_seq": str(self._update_seq),
        }

    async def close(self) -> None:
        logger.debug("In-memory store closed", extra={"db": self._name})

    def _write(self, doc: Document) -> Document:
        doc = copy.deepcopy(doc)
        doc_id = doc.get("_id") or uuid.uuid4().hex
        rev = doc.get("_rev")
        current = self._docs.get(doc_id)

        if current is not None and not current.get("_deleted"):
            if rev != current["_rev"]:
                raise DocumentConflictError(f"Document {doc_id} update conflict")
        elif rev is not None and (current is None or rev != current["_rev"]):
            raise DocumentConflictError(f"Document {doc_id} update conflict")

        generation = int(current["_rev"].split("-", 1)[0]) + 1 if current else 1
        deleted = bool(doc.get("_deleted"))
        files = {} if deleted else self._import_attachments(doc_id, doc.pop("_attachments", None) or {})

        body = {k: v for k, v in doc.items() if k not in ("_id", "_rev", "_attachments")}
        digest_source = json.dumps(
            [body, sorted((name, entry["digest"]) for name, entry in files.items())],
            sort_keys=True,
            default=str,
        )
        new_rev = f"{generation}-{hashlib.md5(digest_source.encode()).hexdigest()}"

        if deleted:
            self._docs[doc_id] = {"_id": doc_id, "_rev": new_rev, "_deleted": True}
        else:
            self._docs[doc_id] = {"_id": doc_id, "_rev": new_rev, **body}
        self._attachments[doc_id] = files
        self._revisions.setdefault(doc_id, []).append(new_rev)
        self._update_seq += 1

        logger.debug(
            f"Wrote document {doc_id}",
            extra={"db": self._name, "rev": new_rev, "deleted": deleted},
        )
        return {"ok": True, "id": doc_id, "rev": new_rev}

    def _import_attachments(self, doc_id: str, entries: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        existing = self._attachments.get(doc_id) or {}
        files: Dict[str, Dict[str, Any]] = {}
        for name, entry in entries.items():
            if entry.get("stub"):
                if name not in existing:
                    raise StoreError(
                        f"Invalid attachment stub in {doc_id} for {name}",
                        status=412,
                        reason="missing_stub",
                    )
                files[name] = existing[name]
                continue
            data = base64.b64decode(entry.get("data") or "")
            files[name] = {
                "content_type": entry.get("content_type", "application/octet-stream"),
                "data": data,
                "digest": "md5-" + base64.b64encode(hashlib.md5(data).digest()).decode("ascii"),
            }
        return files

    @staticmethod
    def _export_attachment(entry: Dict[str, Any], with_data: bool) -> Dict[str, Any]:
        out: Dict[str, Any] = {"content_type": entry["content_type"], "digest": entry["digest"]}
        if with_data:
            out["data"] = base64.b64encode(entry["data"]).decode("ascii")
        else:
            out["length"] = len(entry["data"])
            out["stub"] = True
        return out

    async def _row(self, doc_id: str, include_docs: bool) -> Document:
        stored = self._docs[doc_id]
        row: Document = {"id": doc_id, "key": doc_id, "value": {"rev": stored["_rev"]}}
        if include_docs:
            row["doc"] = await self.get(doc_id)
        return row

    # Testing helpers

    @property
    def document_count(self) -> int:
        return sum(1 for doc in self._docs.values() if not doc.get("_deleted"))

    @property
    def indexes(self) -> List[Dict[str, Any]]:
        return [dict(index) for index in self._indexes.values()]

    def clear(self) -> None:
        self._docs.clear()
        self._attachments.clear()
        self._revisions.clear()
        self._indexes.clear()


class InMemoryStoreServer:
    """In-memory implementation of StoreServer holding InMemoryDocumentStores."""

    def __init__(self) -> None:
        self._databases: Dict[str, InMemoryDocumentStore] = {}

    async def is_up(self) -> bool:
        return True

    async def info(self) -> Document:
        return {"couchdb": "Welcome", "version": "in-memory", "vendor": {"name": "couchentity"}}

    async def list_databases(self) -> List[str]:
        return sorted(self._databases)

    async def create_database(self, name: str) -> None:
        if name in self._databases:
            raise DocumentConflictError(
                f"Database {name} already exists", reason="The database could not be created, the file already exists."
            )
        self._databases[name] = InMemoryDocumentStore(name)
        logger.debug(f"Created in-memory database {name}")

    async def delete_database(self, name: str) -> None:
        if name not in self._databases:
            raise DocumentNotFoundError(f"Database {name} does not exist", reason="Database does not exist.")
        del self._databases[name]

    async def open_database(self, name: str) -> InMemoryDocumentStore:
        store = self._databases.get(name)
        if store is None:
            raise DocumentNotFoundError(f"Database {name} does not exist", reason="Database does not exist.")
        return store

    async def close(self) -> None:
        pass
