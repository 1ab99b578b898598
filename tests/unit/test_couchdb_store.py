"""
Unit tests for the CouchDB HTTP store.

Requests are served by httpx.MockTransport; no CouchDB server is needed.

Tests cover:
- Request mapping (method, percent-encoded path, query, body)
- Authentication headers
- Error mapping (404, 409, 412, other statuses, transport failures)
"""

import json

import httpx
import pytest

from couchentity.store import (
    CouchDbStore,
    CouchDbStoreServer,
    DocumentConflictError,
    DocumentNotFoundError,
    StoreConnectionError,
    StoreError,
)

NOT_FOUND = (404, {"error": "not_found", "reason": "missing"})


class FakeCouch:
    """Routes (method, raw path) to canned responses and records requests."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.raw_path.decode().split("?")[0]
        status, body = self.routes.get((request.method, path), NOT_FOUND)
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    @property
    def last(self):
        return self.requests[-1]

    def server(self, **kwargs):
        kwargs.setdefault("username", "admin")
        kwargs.setdefault("password", "pw")
        return CouchDbStoreServer("http://couch:5984", transport=httpx.MockTransport(self), **kwargs)


@pytest.fixture
def couch():
    return FakeCouch({("HEAD", "/crm"): (200, {})})


@pytest.fixture
def store(couch):
    return CouchDbStore("crm", couch.server()._client)


class TestDocuments:
    """Tests for document requests."""

    @pytest.mark.asyncio
    async def test_get_encodes_id(self, couch, store):
        """Ids are sent as one percent-encoded path segment."""
        couch.routes[("GET", "/crm/crm%2Fcompany%2F1")] = (200, {"_id": "crm/company/1", "_rev": "1-a"})

        doc = await store.get("crm/company/1")

        assert doc["_rev"] == "1-a"
        assert couch.last.method == "GET"

    @pytest.mark.asyncio
    async def test_get_options(self, couch, store):
        """Attachment data and revision info are requested through the query."""
        couch.routes[("GET", "/crm/a")] = (200, {"_id": "a"})

        await store.get("a", attachments=True, revs_info=True)

        assert couch.last.url.params["attachments"] == "true"
        assert couch.last.url.params["revs_info"] == "true"

    @pytest.mark.asyncio
    async def test_put(self, couch, store):
        """Documents with an id are PUT; others are POSTed."""
        couch.routes[("PUT", "/crm/crm%2Fcompany%2F1")] = (201, {"ok": True, "id": "crm/company/1", "rev": "1-a"})
        couch.routes[("POST", "/crm")] = (201, {"ok": True, "id": "generated", "rev": "1-b"})

        assert (await store.put({"_id": "crm/company/1", "name": "Acme"}))["rev"] == "1-a"
        assert json.loads(couch.last.content) == {"_id": "crm/company/1", "name": "Acme"}

        assert (await store.put({"name": "Other"}))["id"] == "generated"
        assert couch.last.method == "POST"

    @pytest.mark.asyncio
    async def test_bulk_docs(self, couch, store):
        """Bulk writes return per-document results."""
        results = [{"ok": True, "id": "a", "rev": "1-a"}, {"id": "b", "error": "conflict", "reason": "x"}]
        couch.routes[("POST", "/crm/_bulk_docs")] = (201, results)

        assert await store.bulk_docs([{"_id": "a"}, {"_id": "b"}]) == results
        assert json.loads(couch.last.content) == {"docs": [{"_id": "a"}, {"_id": "b"}]}

    @pytest.mark.asyncio
    async def test_remove(self, couch, store):
        """Deletes carry the revision."""
        couch.routes[("DELETE", "/crm/a")] = (200, {"ok": True, "id": "a", "rev": "2-a"})

        assert (await store.remove("a", "1-a"))["rev"] == "2-a"
        assert couch.last.url.params["rev"] == "1-a"

    @pytest.mark.asyncio
    async def test_find(self, couch, store):
        """Mango queries post the selector, limit and skip."""
        couch.routes[("POST", "/crm/_find")] = (200, {"docs": [{"_id": "a"}], "warning": "no matching index"})

        result = await store.find({"name": "Acme"}, limit=2, skip=4)

        assert result["docs"] == [{"_id": "a"}]
        assert json.loads(couch.last.content) == {"selector": {"name": "Acme"}, "limit": 2, "skip": 4}

    @pytest.mark.asyncio
    async def test_create_index(self, couch, store):
        """Index definitions are posted as given."""
        couch.routes[("POST", "/crm/_index")] = (200, {"result": "created", "id": "_design/x", "name": "x"})
        index = {"index": {"fields": ["company"]}, "name": "x", "ddoc": "x", "type": "json"}

        assert (await store.create_index(index))["result"] == "created"
        assert json.loads(couch.last.content) == index

    @pytest.mark.asyncio
    async def test_get_attachment(self, couch, store):
        """Attachment names are encoded as a path segment."""
        couch.routes[("GET", "/crm/a/avatar%7Cme.png")] = (200, b"\x89PNG")

        assert await store.get_attachment("a", "avatar|me.png") == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_all_docs_range(self, couch, store):
        """Key ranges are sent JSON-encoded."""
        couch.routes[("GET", "/crm/_all_docs")] = (200, {"rows": []})

        await store.all_docs(start_key="crm/project/", end_key="crm/project/z", include_docs=True)

        params = couch.last.url.params
        assert params["startkey"] == '"crm/project/"'
        assert params["endkey"] == '"crm/project/z"'
        assert params["include_docs"] == "true"

    @pytest.mark.asyncio
    async def test_all_docs_keys(self, couch, store):
        """Key lists are posted."""
        couch.routes[("POST", "/crm/_all_docs")] = (200, {"rows": []})

        await store.all_docs(keys=["a", "b"])

        assert json.loads(couch.last.content) == {"keys": ["a", "b"]}


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.asyncio
    async def test_not_found(self, store):
        """404 maps to DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError) as exc_info:
            await store.get("missing")
        assert exc_info.value.reason == "missing"

    @pytest.mark.asyncio
    async def test_conflict(self, couch, store):
        """409 maps to DocumentConflictError."""
        couch.routes[("PUT", "/crm/a")] = (409, {"error": "conflict", "reason": "Document update conflict."})

        with pytest.raises(DocumentConflictError):
            await store.put({"_id": "a"})

    @pytest.mark.asyncio
    async def test_other_status(self, couch, store):
        """Other failures keep their status."""
        couch.routes[("POST", "/crm/_find")] = (400, {"error": "bad_request", "reason": "invalid operator"})

        with pytest.raises(StoreError) as exc_info:
            await store.find({"a": {"$near": 1}})
        assert exc_info.value.status == 400
        assert exc_info.value.reason == "invalid operator"

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Transport errors map to StoreConnectionError."""

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        server = CouchDbStoreServer("http://couch:5984", transport=httpx.MockTransport(refuse))

        with pytest.raises(StoreConnectionError):
            await server.list_databases()
        assert await server.is_up() is False
        await server.close()


class TestServer:
    """Tests for server-level requests."""

    @pytest.mark.asyncio
    async def test_basic_auth(self, couch):
        """Username and password are sent as basic auth."""
        couch.routes[("GET", "/_all_dbs")] = (200, ["crm"])

        async with couch.server() as server:
            assert await server.list_databases() == ["crm"]
        assert couch.last.headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_bearer_token(self, couch):
        """A token is sent as bearer auth when no username is set."""
        couch.routes[("GET", "/_up")] = (200, {"status": "ok"})

        async with couch.server(username=None, token="t0k3n") as server:
            assert await server.is_up() is True
        assert couch.last.headers["Authorization"] == "Bearer t0k3n"

    @pytest.mark.asyncio
    async def test_create_existing(self, couch):
        """412 on create maps to DocumentConflictError."""
        couch.routes[("PUT", "/crm")] = (412, {"error": "file_exists", "reason": "exists"})

        async with couch.server() as server:
            with pytest.raises(DocumentConflictError, match="already exists"):
                await server.create_database("crm")

    @pytest.mark.asyncio
    async def test_open(self, couch):
        """Opening checks the database exists."""
        async with couch.server() as server:
            store = await server.open_database("crm")
            assert store.name == "crm"
            assert couch.last.method == "HEAD"

            with pytest.raises(DocumentNotFoundError):
                await server.open_database("missing")

    @pytest.mark.asyncio
    async def test_delete(self, couch):
        """Deleting sends DELETE on the database."""
        couch.routes[("DELETE", "/crm")] = (200, {"ok": True})

        async with couch.server() as server:
            await server.delete_database("crm")
        assert couch.last.method == "DELETE"
