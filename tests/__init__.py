"""
couchentity test suite.

This package contains:
- unit/: Unit tests (definitions, entities, stores; no server needed)
- integration/: Integration tests (server, services, migrations and CLI
  over the in-memory store)
"""
