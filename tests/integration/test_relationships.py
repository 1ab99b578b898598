"""
Integration tests for relationship queries and reference resolution.

Tests cover:
- One-to-many queries from the left side
- Many-to-many queries from the right side
- Paging of relationship queries
- Lazy resolution of references after a round trip through the store
"""

import pytest

from couchentity.store import DocumentNotFoundError


async def make_company(database, key, name):
    company = database.service("crm", "company").create(f"crm/company/{key}")
    company.name = name
    await company.save()
    return company


async def make_user(database, key):
    user = database.service("security", "user").create(f"security/user/{key}")
    user.username = key
    await user.save()
    return user


async def make_project(database, key, company=None, users=()):
    project = database.service("crm", "project").create(f"crm/project/{key}")
    project.name = key.capitalize()
    if company is not None:
        project.company = company
    for user in users:
        project.userList.add(user)
    await project.save()
    return project


class TestOneToMany:
    """Tests for company -> projects."""

    @pytest.mark.asyncio
    async def test_query(self, database):
        """get<Right>List returns the projects referencing the company."""
        acme = await make_company(database, "acme", "Acme")
        other = await make_company(database, "other", "Other")
        await make_project(database, "apollo", acme)
        await make_project(database, "gemini", other)
        await make_project(database, "mercury", acme)
        await make_project(database, "orphan")

        projects = await acme.getProjectList()

        assert [p.id for p in projects] == ["crm/project/apollo", "crm/project/mercury"]
        assert [p.id for p in await other.getProjectList()] == ["crm/project/gemini"]

    @pytest.mark.asyncio
    async def test_paging(self, database):
        """Queries accept page and size."""
        acme = await make_company(database, "acme", "Acme")
        for key in ("a", "b", "c", "d", "e"):
            await make_project(database, key, acme)

        second = await acme.getProjectList(page=2, size=2)
        last = await acme.getProjectList(page=3, size=2)

        assert [p.id for p in second] == ["crm/project/c", "crm/project/d"]
        assert [p.id for p in last] == ["crm/project/e"]

    @pytest.mark.asyncio
    async def test_empty(self, database):
        """A company without projects gets an empty list."""
        acme = await make_company(database, "acme", "Acme")
        assert await acme.getProjectList() == []

    @pytest.mark.asyncio
    async def test_reference_round_trip(self, database):
        """Stored references resolve lazily after loading."""
        acme = await make_company(database, "acme", "Acme")
        await make_project(database, "apollo", acme)

        loaded = await database.service("crm", "project").get("crm/project/apollo")

        assert loaded.company.id == "crm/company/acme"
        assert loaded.company.entity is None
        company = await loaded.company.get()
        assert company.name == "Acme"
        assert loaded.company.entity is company

    @pytest.mark.asyncio
    async def test_dangling_reference(self, database):
        """Resolving a reference to a deleted entity fails."""
        acme = await make_company(database, "acme", "Acme")
        await make_project(database, "apollo", acme)
        await acme.delete()

        loaded = await database.service("crm", "project").get("crm/project/apollo")
        with pytest.raises(DocumentNotFoundError):
            await loaded.company.get()


class TestManyToMany:
    """Tests for project <-> users."""

    @pytest.mark.asyncio
    async def test_query(self, database):
        """get<Left>List returns the projects listing the user."""
        alice = await make_user(database, "alice")
        bob = await make_user(database, "bob")
        await make_project(database, "apollo", users=[alice, bob])
        await make_project(database, "gemini", users=[bob])
        await make_project(database, "mercury")

        assert [p.id for p in await alice.getProjectList()] == ["crm/project/apollo"]
        assert [p.id for p in await bob.getProjectList()] == ["crm/project/apollo", "crm/project/gemini"]

    @pytest.mark.asyncio
    async def test_reference_list_round_trip(self, database):
        """Stored reference lists keep their order and resolve lazily."""
        alice = await make_user(database, "alice")
        bob = await make_user(database, "bob")
        await make_project(database, "apollo", users=[bob, alice])

        loaded = await database.service("crm", "project").get("crm/project/apollo")

        assert loaded.userList.ids == ["security/user/bob", "security/user/alice"]
        users = await loaded.userList.get_all()
        assert [u.username for u in users] == ["bob", "alice"]
        assert (await loaded.userList.get("security/user/alice")).username == "alice"

    @pytest.mark.asyncio
    async def test_removed_user_no_longer_listed(self, database):
        """Removing a reference updates the query result once saved."""
        alice = await make_user(database, "alice")
        project = await make_project(database, "apollo", users=[alice])

        project.userList.remove(alice)
        await project.save()

        assert await alice.getProjectList() == []

    @pytest.mark.asyncio
    async def test_stored_document(self, database):
        """Reference fields are persisted as ids."""
        acme = await make_company(database, "acme", "Acme")
        alice = await make_user(database, "alice")
        await make_project(database, "apollo", acme, users=[alice])

        doc = await database.store.get("crm/project/apollo")

        assert doc["company"] == "crm/company/acme"
        assert doc["userList"] == ["security/user/alice"]
        assert doc["type"] == "crm/project"
