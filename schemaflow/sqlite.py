"""SQLite backend — version tracking and transactions on an aiosqlite connection.

The tracking table is itself created by a migration step of the
"AutomaticMigration" schema, so the migrator versions its own storage.
Versions are appended, never updated; the most recent row per schema wins.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

import aiosqlite

from schemaflow.discovery import StepSource
from schemaflow.step import MigrationStep
from schemaflow.tracking import (
    AutomaticMigrationRepository,
    MigrationTrack,
    UnitOfWork,
    UnitOfWorkCreator,
    utcnow,
)
from schemaflow.types import AUTOMATIC_MIGRATION_SCHEMA_NAME, SchemaName

TRACKING_TABLE = "schema_migrations"


# ── Bootstrap schema ──────────────────────────────────────────────────────────


class CreateTrackingTable(MigrationStep):
    schema_name = AUTOMATIC_MIGRATION_SCHEMA_NAME
    target = "1.0.0"

    async def execute(self, db: aiosqlite.Connection) -> None:
        await db.execute(f"""
            CREATE TABLE IF NOT EXISTS {TRACKING_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                schema_name TEXT NOT NULL,
                version TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{TRACKING_TABLE}_schema "
            f"ON {TRACKING_TABLE}(schema_name, updated_at)"
        )


def tracking_steps(
    schema_name: SchemaName = AUTOMATIC_MIGRATION_SCHEMA_NAME,
) -> list[MigrationStep]:
    return [CreateTrackingTable(schema_name=schema_name)]


class SqliteTrackingSource(StepSource):
    """Contributes the bootstrap schema for SQLite datastores."""

    def __init__(self, schema_name: SchemaName = AUTOMATIC_MIGRATION_SCHEMA_NAME) -> None:
        self.schema_name = schema_name

    def discover(self) -> list[MigrationStep]:
        return tracking_steps(self.schema_name)


# ── Repository ────────────────────────────────────────────────────────────────


class SqliteMigrationRepository(AutomaticMigrationRepository):
    """Reads and appends version records. Never commits on its own."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def is_migrations_initialized(self) -> bool:
        async with self._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (TRACKING_TABLE,),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def get_installed_version(self, schema_name: SchemaName) -> str | None:
        async with self._db.execute(
            f"SELECT version FROM {TRACKING_TABLE} WHERE schema_name = ? "
            "ORDER BY updated_at DESC, id DESC LIMIT 1",
            (schema_name,),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def append_version(self, schema_name: SchemaName, version: str) -> None:
        await self._db.execute(
            f"INSERT INTO {TRACKING_TABLE} (schema_name, version, updated_at) "
            "VALUES (?, ?, ?)",
            (schema_name, version, utcnow().isoformat()),
        )

    async def untrack_schemas(self, schema_names: Iterable[SchemaName]) -> None:
        names = list(schema_names)
        if not names or not await self.is_migrations_initialized():
            return
        placeholders = ", ".join("?" for _ in names)
        await self._db.execute(
            f"DELETE FROM {TRACKING_TABLE} WHERE schema_name IN ({placeholders})",
            names,
        )

    async def history(self, schema_name: SchemaName) -> list[MigrationTrack]:
        """All records of a schema, oldest first."""
        tracks = []
        async with self._db.execute(
            f"SELECT schema_name, version, updated_at FROM {TRACKING_TABLE} "
            "WHERE schema_name = ? ORDER BY updated_at, id",
            (schema_name,),
        ) as cursor:
            async for row in cursor:
                tracks.append(
                    MigrationTrack(
                        schema_name=row[0],
                        version=row[1],
                        updated_at=datetime.fromisoformat(row[2]),
                    )
                )
        return tracks


# ── Transactions ──────────────────────────────────────────────────────────────


class SqliteUnitOfWork(UnitOfWork):
    """Explicit BEGIN so DDL is rolled back together with the version record."""

    def __init__(self, db: aiosqlite.Connection, tag: str = "") -> None:
        super().__init__(tag)
        self._db = db

    async def _begin(self) -> None:
        if not self._db.in_transaction:
            await self._db.execute("BEGIN")

    async def _commit(self) -> None:
        await self._db.commit()

    async def _rollback(self) -> None:
        await self._db.rollback()


class SqliteTransactionManager(UnitOfWorkCreator):
    def start_unit_of_work(
        self, db: aiosqlite.Connection, tag: str = ""
    ) -> SqliteUnitOfWork:
        return SqliteUnitOfWork(db, tag)
