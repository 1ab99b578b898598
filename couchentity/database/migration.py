"""
Schema migrations.

A Migration moves a database between two schema versions. Subclasses set
``from_version``/``to_version`` and implement on_upgrade()/on_downgrade(),
which transform stored documents (usually with the actions below) and
return the action log entries.

    class AddCompanySize(Migration):
        from_version = 1
        to_version = 2

        async def on_upgrade(self):
            return [await self.add_property("crm", "company", "size", 0)]

        async def on_downgrade(self):
            return [await self.remove_property("crm", "company", "size")]

    await AddCompanySize(db).up(schema_v2)

Order of a migration: precondition checks -> hook -> append to the
``$/migrations`` log -> (with a schema) rewrite ``$/schema`` -> re-import the
schema into the live database.

Invariants:
    - The migration log is append-only
    - The schema document is written only after the hook and the log write
      succeeded; a failed migration leaves it untouched
    - Actions report failures as ActionResult(ok=False); they do not raise
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..errors import MigrationError
from ..model.tools import now_millis
from ..schema.definitions import MIGRATIONS_DOC_ID, SCHEMA_DOC_ID, Schema
from ..store.base import Document, DocumentNotFoundError
from .services import HIGH_KEY

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of a migration action.

    Attributes:
        ok: Whether every document was written
        log: Log entry ``{action, payload, when, docs}`` on success
        error: Error description on failure
    """

    ok: bool
    log: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "log": self.log}
        return {"ok": False, "error": self.error}


class MigrationAction:
    """Bulk transform of every stored document of one model."""

    name = "action"

    def __init__(self, database: Database) -> None:
        self.database = database

    async def list(self, namespace: str, type_name: str) -> List[Document]:
        """Documents of ``namespace/type_name`` (singleton or collection ids)."""
        prefix = f"{namespace}/{type_name}"
        result = await self.database.store.all_docs(
            start_key=prefix, end_key=f"{prefix}/{HIGH_KEY}", include_docs=True
        )
        return [
            row["doc"]
            for row in result["rows"]
            if row.get("doc") and (row["id"] == prefix or row["id"].startswith(f"{prefix}/"))
        ]

    def transform(self, doc: Document) -> bool:
        """Change a document in place; return False to leave it out."""
        raise NotImplementedError

    def payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    async def _apply(self, namespace: str, type_name: str) -> ActionResult:
        try:
            docs = [doc for doc in await self.list(namespace, type_name) if self.transform(doc)]
            if docs:
                results = await self.database.store.bulk_docs(docs)
                failed = [r.get("id") for r in results if r.get("error")]
                if failed:
                    return ActionResult(ok=False, error=f"{self.name} failed for {failed}")
        except Exception as e:  # surfaced through ActionResult
            logger.error(f"{self.name} on {namespace}/{type_name} failed: {e}")
            return ActionResult(ok=False, error=str(e))

        log = {"action": self.name, "payload": self.payload(), "when": now_millis(), "docs": len(docs)}
        logger.info(f"{self.name} on {namespace}/{type_name}: {len(docs)} documents", extra=log)
        return ActionResult(ok=True, log=log)


class AddProperty(MigrationAction):
    """Set a property to a default value on every document."""

    name = "add-property"

    async def run(self, namespace: str, type_name: str, property_name: str, default: Any = None) -> ActionResult:
        self._args = {"namespace": namespace, "type": type_name, "property": property_name, "default": default}
        return await self._apply(namespace, type_name)

    def transform(self, doc: Document) -> bool:
        doc[self._args["property"]] = copy.deepcopy(self._args["default"])
        return True

    def payload(self) -> Dict[str, Any]:
        return dict(self._args)


class RemoveProperty(MigrationAction):
    """Remove a property from every document."""

    name = "remove-property"

    async def run(self, namespace: str, type_name: str, property_name: str) -> ActionResult:
        self._args = {"namespace": namespace, "type": type_name, "property": property_name}
        return await self._apply(namespace, type_name)

    def transform(self, doc: Document) -> bool:
        doc.pop(self._args["property"], None)
        return True

    def payload(self) -> Dict[str, Any]:
        return dict(self._args)


class UpdateProperty(MigrationAction):
    """Replace a property with ``callback(old_value)``; unchanged documents are skipped."""

    name = "update-property"

    async def run(
        self,
        namespace: str,
        type_name: str,
        property_name: str,
        callback: Callable[[Any], Any],
    ) -> ActionResult:
        self._args = {"namespace": namespace, "type": type_name, "property": property_name}
        self._callback = callback
        return await self._apply(namespace, type_name)

    def transform(self, doc: Document) -> bool:
        name = self._args["property"]
        old = doc.get(name)
        new = self._callback(copy.deepcopy(old))
        if name in doc and new == old:
            return False
        doc[name] = new
        return True

    def payload(self) -> Dict[str, Any]:
        return dict(self._args)


class Migration:
    """Base class of schema migrations."""

    from_version: int = 0
    to_version: int = 0

    def __init__(self, database: Database) -> None:
        self.database = database

    async def on_upgrade(self) -> List[Dict[str, Any]]:
        raise NotImplementedError("Upgrade process not implemented")

    async def on_downgrade(self) -> List[Dict[str, Any]]:
        raise NotImplementedError("Downgrade process not implemented")

    async def up(self, schema: Optional[Schema] = None) -> None:
        """Upgrade from ``from_version`` to ``to_version``.

        Raises:
            MigrationError: If the database or schema version does not match,
                or if any step fails
        """
        self._check(self.from_version, schema, self.to_version)
        await self._migrate("upgrade", self.to_version, self.on_upgrade, schema)

    async def down(self, schema: Optional[Schema] = None) -> None:
        """Downgrade from ``to_version`` to ``from_version``."""
        self._check(self.to_version, schema, self.from_version)
        await self._migrate("downgrade", self.from_version, self.on_downgrade, schema)

    async def add_property(self, namespace: str, type_name: str, property_name: str, default: Any = None) -> Dict[str, Any]:
        return self._unwrap(await AddProperty(self.database).run(namespace, type_name, property_name, default))

    async def remove_property(self, namespace: str, type_name: str, property_name: str) -> Dict[str, Any]:
        return self._unwrap(await RemoveProperty(self.database).run(namespace, type_name, property_name))

    async def update_property(
        self,
        namespace: str,
        type_name: str,
        property_name: str,
        callback: Callable[[Any], Any],
    ) -> Dict[str, Any]:
        return self._unwrap(await UpdateProperty(self.database).run(namespace, type_name, property_name, callback))

    def _unwrap(self, result: ActionResult) -> Dict[str, Any]:
        if not result.ok:
            raise MigrationError(result.error or "Migration action failed", self.from_version, self.to_version)
        return result.log

    def _check(self, current: int, schema: Optional[Schema], target: int) -> None:
        if self.database.version != current:
            raise MigrationError(
                f"Database {self.database.name} is at version {self.database.version}, "
                f"this migration expects version {current}",
                self.from_version,
                self.to_version,
            )
        if schema is not None and schema.version != target:
            raise MigrationError(
                f"Schema version {schema.version} does not match target version {target}",
                self.from_version,
                self.to_version,
            )

    async def _migrate(self, kind: str, version: int, hook: Callable[[], Any], schema: Optional[Schema]) -> None:
        store = self.database.store
        logger.info(
            f"Starting {kind} of {self.database.name} to version {version}",
            extra={"db": self.database.name, "migration": type(self).__name__},
        )
        try:
            actions = await hook()

            try:
                log_doc = await store.get(MIGRATIONS_DOC_ID)
            except DocumentNotFoundError:
                log_doc = {"_id": MIGRATIONS_DOC_ID, "log": []}
            log_doc.setdefault("log", []).append(
                {"when": now_millis(), "type": kind, "version": version, "actions": actions or []}
            )
            await store.put(log_doc)

            if schema is not None:
                try:
                    schema_doc = await store.get(SCHEMA_DOC_ID)
                except DocumentNotFoundError:
                    schema_doc = {"_id": SCHEMA_DOC_ID}
                schema_doc.update(
                    {
                        "version": schema.version,
                        "fingerprint": schema.fingerprint(),
                        **schema.to_dict(),
                    }
                )
                await store.put(schema_doc)
                self.database.import_schema(schema)
                await self.database.ensure_indexes()
            else:
                self.database.version = version
        except MigrationError:
            raise
        except Exception as e:
            raise MigrationError(
                f"{kind.capitalize()} of {self.database.name} to version {version} failed: {e}",
                self.from_version,
                self.to_version,
            ) from e

        logger.info(f"Completed {kind} of {self.database.name} to version {version}", extra={"db": self.database.name})
