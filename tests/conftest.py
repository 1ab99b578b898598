"""Shared fixtures: security, sample schema and in-memory databases."""

import pytest
import pytest_asyncio

from couchentity import Security, Server
from couchentity.store import InMemoryStoreServer

from tests.sample_models import build_schema


@pytest.fixture
def security():
    """Security with a fixed secret key."""
    return Security("test-secret-key")


@pytest.fixture
def schema():
    """Sample schema, version 1."""
    return build_schema()


@pytest.fixture
def store_server():
    """Fresh in-memory store server."""
    return InMemoryStoreServer()


@pytest.fixture
def server(store_server, security):
    """Server over the in-memory store server."""
    return Server(store_server, security)


@pytest_asyncio.fixture
async def database(server, schema):
    """Created and opened sample database."""
    await server.create("crm", schema)
    return await server.use("crm", schema)
