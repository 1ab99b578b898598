"""
Integration tests for schema migrations.

Tests cover:
- AddProperty, RemoveProperty and UpdateProperty actions
- Version preconditions of up() and down()
- The append-only migration log
- Schema document rewrite and re-import
- Failed migrations leaving the database untouched
"""

import dataclasses

import pytest

from couchentity import Migration, prop
from couchentity.database.migration import AddProperty, RemoveProperty, UpdateProperty
from couchentity.errors import MigrationError
from couchentity.schema.definitions import SCHEMA_DOC_ID
from couchentity.store import StoreError

from tests.sample_models import COMPANY, build_schema

COMPANY_V2 = dataclasses.replace(COMPANY, properties=COMPANY.properties + (prop("rating", "Integer"),))


class AddRating(Migration):
    from_version = 1
    to_version = 2

    async def on_upgrade(self):
        return [await self.add_property("crm", "company", "rating", 3)]

    async def on_downgrade(self):
        return [await self.remove_property("crm", "company", "rating")]


class Unimplemented(Migration):
    from_version = 1
    to_version = 2


class Exploding(Migration):
    from_version = 1
    to_version = 2

    async def on_upgrade(self):
        raise RuntimeError("boom")


@pytest.fixture
def schema_v2():
    return build_schema(version=2, company=COMPANY_V2)


async def add_companies(database, *names):
    service = database.service("crm", "company")
    for index, name in enumerate(names):
        company = service.create(f"crm/company/{index}")
        company.name = name
        await company.save()


class TestActions:
    """Tests for the bulk actions."""

    @pytest.mark.asyncio
    async def test_add_property(self, database):
        """AddProperty sets the default on every document of the model."""
        await add_companies(database, "Acme", "Globex")
        project = database.service("crm", "project").create()
        project.name = "Apollo"
        await project.save()

        result = await AddProperty(database).run("crm", "company", "rating", 3)

        assert result.ok is True
        assert result.log["action"] == "add-property"
        assert result.log["docs"] == 2
        assert result.log["payload"] == {"namespace": "crm", "type": "company", "property": "rating", "default": 3}
        assert (await database.store.get("crm/company/0"))["rating"] == 3
        assert "rating" not in await database.store.get(project.id)

    @pytest.mark.asyncio
    async def test_remove_property(self, database):
        """RemoveProperty drops the field from every document."""
        await add_companies(database, "Acme")

        result = await RemoveProperty(database).run("crm", "company", "director")

        assert result.ok is True
        assert "director" not in await database.store.get("crm/company/0")

    @pytest.mark.asyncio
    async def test_update_property(self, database):
        """UpdateProperty rewrites values and skips unchanged documents."""
        await add_companies(database, "Acme", "GLOBEX")

        result = await UpdateProperty(database).run("crm", "company", "name", lambda name: name.upper())

        assert result.ok is True
        assert result.log["docs"] == 1
        assert (await database.store.get("crm/company/0"))["name"] == "ACME"

    @pytest.mark.asyncio
    async def test_singleton(self, database):
        """Actions cover singleton documents too."""
        settings = database.service("security", "settings").create()
        await settings.save()

        result = await AddProperty(database).run("security", "settings", "fontSize", 12)

        assert result.log["docs"] == 1
        assert (await database.store.get("security/settings"))["fontSize"] == 12

    @pytest.mark.asyncio
    async def test_failure_is_reported(self, database):
        """A failing callback yields ok=False instead of raising."""
        await add_companies(database, "Acme")

        def fail(value):
            raise ValueError("bad value")

        result = await UpdateProperty(database).run("crm", "company", "name", fail)

        assert result.ok is False
        assert result.error == "bad value"
        assert result.to_dict() == {"ok": False, "error": "bad value"}


class TestMigration:
    """Tests for Migration.up() and Migration.down()."""

    @pytest.mark.asyncio
    async def test_up(self, database, schema_v2):
        """Upgrading transforms data, logs, rewrites and imports the schema."""
        await add_companies(database, "Acme")

        await AddRating(database).up(schema_v2)

        assert database.version == 2
        company = await database.service("crm", "company").get("crm/company/0")
        assert company.rating == 3

        stored = await database.store.get(SCHEMA_DOC_ID)
        assert stored["version"] == 2
        assert stored["fingerprint"] == schema_v2.fingerprint()

        log = await database.get_migration_log()
        assert [entry["type"] for entry in log] == ["init", "upgrade"]
        assert log[1]["version"] == 2
        assert log[1]["actions"][0]["action"] == "add-property"

    @pytest.mark.asyncio
    async def test_down(self, database, schema, schema_v2):
        """Downgrading reverts data and appends to the log."""
        await add_companies(database, "Acme")
        await AddRating(database).up(schema_v2)

        await AddRating(database).down(schema)

        assert database.version == 1
        assert "rating" not in await database.store.get("crm/company/0")
        assert "rating" not in database.service("crm", "company").create().field_names
        log = await database.get_migration_log()
        assert [entry["type"] for entry in log] == ["init", "upgrade", "downgrade"]
        assert log[2]["version"] == 1

    @pytest.mark.asyncio
    async def test_wrong_database_version(self, database, schema_v2):
        """up() requires the database at from_version; down() at to_version."""
        with pytest.raises(MigrationError, match="this migration expects version 2"):
            await AddRating(database).down()

        await AddRating(database).up(schema_v2)
        with pytest.raises(MigrationError, match="this migration expects version 1"):
            await AddRating(database).up(schema_v2)

    @pytest.mark.asyncio
    async def test_wrong_schema_version(self, database, schema):
        """The given schema must carry the target version."""
        with pytest.raises(MigrationError, match="Schema version 1 does not match target version 2"):
            await AddRating(database).up(schema)
        assert len(await database.get_migration_log()) == 1

    @pytest.mark.asyncio
    async def test_unimplemented_hook(self, database, schema_v2):
        """Missing hooks fail the migration."""
        with pytest.raises(MigrationError, match="Upgrade of crm to version 2 failed: Upgrade process not implemented"):
            await Unimplemented(database).up(schema_v2)

    @pytest.mark.asyncio
    async def test_failure_leaves_schema(self, database, schema_v2):
        """A failed migration leaves version, log and schema document untouched."""
        with pytest.raises(MigrationError, match="boom") as exc_info:
            await Exploding(database).up(schema_v2)

        assert exc_info.value.from_version == 1
        assert exc_info.value.to_version == 2
        assert database.version == 1
        assert (await database.store.get(SCHEMA_DOC_ID))["version"] == 1
        assert len(await database.get_migration_log()) == 1

    @pytest.mark.asyncio
    async def test_failed_action(self, database, schema_v2):
        """A failed action aborts the migration."""

        class Failing(Migration):
            from_version = 1
            to_version = 2

            async def on_upgrade(self):
                return [await self.update_property("crm", "company", "name", lambda value: value.nope)]

        await add_companies(database, "Acme")
        with pytest.raises(MigrationError, match="nope"):
            await Failing(database).up(schema_v2)
        assert (await database.store.get("crm/company/0"))["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_without_schema(self, database):
        """Without a schema only the data, log and version change."""
        await add_companies(database, "Acme")

        await AddRating(database).up()

        assert database.version == 2
        assert (await database.store.get(SCHEMA_DOC_ID))["version"] == 1
        assert (await database.get_migration_log())[-1]["type"] == "upgrade"
        assert "rating" not in database.service("crm", "company").create().field_names

    @pytest.mark.asyncio
    async def test_index_failure(self, database, schema_v2, monkeypatch):
        """Store failures while re-indexing are reported as MigrationError."""

        async def refuse(index):
            raise StoreError("index creation refused", status=500)

        monkeypatch.setattr(database.store, "create_index", refuse)

        with pytest.raises(MigrationError, match="Upgrade of crm to version 2 failed: index creation refused"):
            await AddRating(database).up(schema_v2)
