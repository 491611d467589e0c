"""Shared test fixtures — an in-memory datastore with transactional fakes."""

from __future__ import annotations

from typing import Iterable

import pytest

from schemaflow.builder import DatabaseMigration, MigrationConfig
from schemaflow.discovery import StaticStepSource
from schemaflow.step import MigrationStep
from schemaflow.tracking import (
    AutomaticMigrationRepository,
    MigrationTrack,
    UnitOfWork,
    UnitOfWorkCreator,
)
from schemaflow.types import AUTOMATIC_MIGRATION_SCHEMA_NAME


class FakeDatabase:
    """Stands in for a datastore handle. Steps append to `applied`."""

    def __init__(self) -> None:
        self.applied: list[tuple[str, str | None, str]] = []
        self.tracks: list[MigrationTrack] = []
        self.initialized = False
        self.commits = 0
        self.rollbacks = 0
        self.touched = False  # set by any repository or unit-of-work call


class RecordingStep(MigrationStep):
    """Records its edge on the database; optionally fails instead."""

    def __init__(
        self,
        target: str,
        source: str | None = None,
        schema_name: str = "Plop",
        priority: int = 0,
        fail: bool = False,
    ) -> None:
        super().__init__(
            target=target, source=source, schema_name=schema_name, priority=priority
        )
        self.fail = fail

    async def execute(self, db: FakeDatabase) -> None:
        db.applied.append(
            (
                self.schema_name,
                str(self.source) if self.source is not None else None,
                str(self.target),
            )
        )
        if self.fail:
            raise RuntimeError(f"boom in {self.describe()}")


class TrackingSetup(MigrationStep):
    """Bootstrap step: 'creates' the tracking storage."""

    schema_name = AUTOMATIC_MIGRATION_SCHEMA_NAME
    target = "1.0.0"

    async def execute(self, db: FakeDatabase) -> None:
        db.initialized = True
        db.applied.append((self.schema_name, None, str(self.target)))


class InMemoryRepository(AutomaticMigrationRepository):
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def is_migrations_initialized(self) -> bool:
        self.db.touched = True
        return self.db.initialized

    async def get_installed_version(self, schema_name: str) -> str | None:
        self.db.touched = True
        for track in reversed(self.db.tracks):
            if track.schema_name == schema_name:
                return track.version
        return None

    async def append_version(self, schema_name: str, version: str) -> None:
        self.db.tracks.append(MigrationTrack(schema_name=schema_name, version=version))

    async def untrack_schemas(self, schema_names: Iterable[str]) -> None:
        names = set(schema_names)
        self.db.tracks = [t for t in self.db.tracks if t.schema_name not in names]

    def versions(self) -> dict[str, str]:
        """Current version per schema."""
        current: dict[str, str] = {}
        for track in self.db.tracks:
            current[track.schema_name] = track.version
        return current


class SnapshotUnitOfWork(UnitOfWork):
    """Snapshots the fake database on begin and restores it on rollback."""

    def __init__(self, db: FakeDatabase, tag: str = "") -> None:
        super().__init__(tag)
        self.db = db

    async def _begin(self) -> None:
        self.db.touched = True
        self._snapshot = (list(self.db.applied), list(self.db.tracks), self.db.initialized)

    async def _commit(self) -> None:
        self.db.commits += 1

    async def _rollback(self) -> None:
        self.db.applied, self.db.tracks, self.db.initialized = self._snapshot
        self.db.rollbacks += 1


class SnapshotUnitOfWorkCreator(UnitOfWorkCreator):
    def __init__(self) -> None:
        self.tags: list[str] = []

    def start_unit_of_work(self, db: FakeDatabase, tag: str = "") -> UnitOfWork:
        self.tags.append(tag)
        return SnapshotUnitOfWork(db, tag)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def repository(db):
    return InMemoryRepository(db)


@pytest.fixture
def uow_creator():
    return SnapshotUnitOfWorkCreator()


@pytest.fixture
def make_migration(db, repository, uow_creator):
    """Factory: DatabaseMigration over the fake datastore for the given steps."""

    def _factory(
        *steps: MigrationStep | type[MigrationStep],
        bootstrap: bool = True,
        continue_on_error: bool = False,
        log=None,
    ) -> DatabaseMigration:
        declared = list(steps)
        if bootstrap:
            declared.append(TrackingSetup)
        return DatabaseMigration(
            MigrationConfig(
                db=db,
                step_sources=[StaticStepSource(*declared)],
                log=log,
                repository=repository,
                unit_of_work_creator=uow_creator,
                continue_on_error=continue_on_error,
            )
        )

    return _factory
