"""
CouchDB document store over HTTP.

Thin async pass-through to the CouchDB HTTP API using httpx. One
CouchDbStoreServer owns the HTTP client; the CouchDbStore instances it opens
share that client.

Invariants:
    - Document ids, database names and attachment names are percent-encoded
      as a single path segment (ids contain "/")
    - HTTP 404 -> DocumentNotFoundError, 409 -> DocumentConflictError,
      other >= 400 -> StoreError, transport failures -> StoreConnectionError

How to change safely:
    - Keep result shapes identical to the CouchDB responses
    - Tests drive this module through httpx.MockTransport; keep the
      transport injectable
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .base import (
    Document,
    DocumentConflictError,
    DocumentNotFoundError,
    StoreConnectionError,
    StoreError,
)

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


async def _request(client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> httpx.Response:
    """Issue a request and map CouchDB failures onto store errors."""
    try:
        response = await client.request(method, path, **kwargs)
    except httpx.HTTPError as e:
        raise StoreConnectionError(f"{method} {path} failed: {e}") from e

    if response.status_code >= 400:
        try:
            body = response.json()
        except ValueError:
            body = {}
        error = body.get("error") if isinstance(body, dict) else None
        reason = body.get("reason") if isinstance(body, dict) else None
        message = f"{method} {path} returned {response.status_code}: {error or 'error'} ({reason})"
        if response.status_code == 404:
            raise DocumentNotFoundError(message, reason=reason)
        if response.status_code == 409:
            raise DocumentConflictError(message, reason=reason)
        raise StoreError(message, status=response.status_code, reason=reason)
    return response


class CouchDbStore:
    """DocumentStore backed by one CouchDB database."""

    def __init__(self, name: str, client: httpx.AsyncClient) -> None:
        self._name = name
        self._client = client
        self._prefix = f"/{_segment(name)}"

    @property
    def name(self) -> str:
        return self._name

    def _doc_path(self, doc_id: str) -> str:
        return f"{self._prefix}/{_segment(doc_id)}"

    async def get(self, doc_id: str, *, attachments: bool = False, revs_info: bool = False) -> Document:
        params = {}
        if attachments:
            params["attachments"] = "true"
        if revs_info:
            params["revs_info"] = "true"
        response = await _request(self._client, "GET", self._doc_path(doc_id), params=params)
        return response.json()

    async def put(self, doc: Document) -> Document:
        if doc.get("_id"):
            response = await _request(self._client, "PUT", self._doc_path(doc["_id"]), json=doc)
        else:
            response = await _request(self._client, "POST", self._prefix, json=doc)
        return response.json()

    async def bulk_docs(self, docs: List[Document]) -> List[Document]:
        response = await _request(self._client, "POST", f"{self._prefix}/_bulk_docs", json={"docs": docs})
        return response.json()

    async def remove(self, doc_id: str, rev: str) -> Document:
        response = await _request(self._client, "DELETE", self._doc_path(doc_id), params={"rev": rev})
        return response.json()

    async def find(
        self,
        selector: Dict[str, Any],
        *,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> Document:
        body: Dict[str, Any] = {"selector": selector}
        if limit is not None:
            body["limit"] = limit
        if skip:
            body["skip"] = skip
        response = await _request(self._client, "POST", f"{self._prefix}/_find", json=body)
        result = response.json()
        if result.get("warning"):
            logger.debug(f"Mango warning: {result['warning']}", extra={"db": self._name})
        return result

    async def create_index(self, index: Dict[str, Any]) -> Document:
        response = await _request(self._client, "POST", f"{self._prefix}/_index", json=index)
        return response.json()

    async def get_attachment(self, doc_id: str, name: str) -> bytes:
        response = await _request(self._client, "GET", f"{self._doc_path(doc_id)}/{_segment(name)}")
        return response.content

    async def all_docs(
        self,
        *,
        start_key: Optional[str] = None,
        end_key: Optional[str] = None,
        keys: Optional[List[str]] = None,
        include_docs: bool = False,
    ) -> Document:
        params: Dict[str, str] = {}
        if include_docs:
            params["include_docs"] = "true"
        if keys is not None:
            response = await _request(
                self._client, "POST", f"{self._prefix}/_all_docs", params=params, json={"keys": keys}
            )
            return response.json()
        if start_key is not None:
            params["startkey"] = json.dumps(start_key)
        if end_key is not None:
            params["endkey"] = json.dumps(end_key)
        response = await _request(self._client, "GET", f"{self._prefix}/_all_docs", params=params)
        return response.json()

    async def info(self) -> Document:
        response = await _request(self._client, "GET", self._prefix)
        return response.json()

    async def close(self) -> None:
        # The HTTP client belongs to the server object.
        pass


class CouchDbStoreServer:
    """StoreServer talking to a CouchDB node.

    Example:
        >>> async with CouchDbStoreServer("http://localhost:5984", username="admin", password="pw") as server:
        ...     await server.create_database("crm")
        ...     store = await server.open_database("crm")
    """

    def __init__(
        self,
        endpoint: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        auth = httpx.BasicAuth(username, password or "") if username else None
        headers = {"Accept": "application/json"}
        if token and not username:
            headers["Authorization"] = f"Bearer {token}"
        self.endpoint = endpoint
        self._client = httpx.AsyncClient(
            base_url=endpoint,
            auth=auth,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> CouchDbStoreServer:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def is_up(self) -> bool:
        try:
            await _request(self._client, "GET", "/_up")
        except StoreError as e:
            logger.warning(f"CouchDB at {self.endpoint} is not available: {e}")
            return False
        return True

    async def info(self) -> Document:
        response = await _request(self._client, "GET", "/")
        return response.json()

    async def list_databases(self) -> List[str]:
        response = await _request(self._client, "GET", "/_all_dbs")
        return response.json()

    async def create_database(self, name: str) -> None:
        try:
            await _request(self._client, "PUT", f"/{_segment(name)}")
        except StoreError as e:
            if e.status == 412:
                raise DocumentConflictError(f"Database {name} already exists", reason=e.reason) from e
            raise

    async def delete_database(self, name: str) -> None:
        await _request(self._client, "DELETE", f"/{_segment(name)}")

    async def open_database(self, name: str) -> CouchDbStore:
        await _request(self._client, "HEAD", f"/{_segment(name)}")
        return CouchDbStore(name, self._client)

    async def close(self) -> None:
        await self._client.aclose()
