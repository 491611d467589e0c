"""Tests for the migrations manager."""

import pytest

from schemaflow.exceptions import DuplicateSchemaError, SchemaNotFound
from schemaflow.executor import SchemaExecutor
from schemaflow.manager import MigrationsManager
from schemaflow.runner import MigrationRunner
from schemaflow.types import DEFAULT_SCHEMA_NAME

from tests.conftest import FakeDatabase, RecordingStep


def executor(name, priority=0):
    return SchemaExecutor(name, [RecordingStep("1.0.0", schema_name=name, priority=priority)])


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def manager(fake_db):
    return MigrationsManager(
        [executor("Low", 1), executor("High", 10), executor("Beta", 5), executor("Alpha", 5)],
        MigrationRunner(fake_db),
    )


def test_ordered_by_priority_then_name(manager):
    assert manager.schema_names() == ["High", "Alpha", "Beta", "Low"]


def test_runner_is_shared(manager):
    assert all(s.runner is manager.runner for s in manager.schemas)


def test_lookup(manager):
    assert manager.get_schema_migrator("Beta").schema_name == "Beta"
    assert "Low" in manager
    assert "Nope" not in manager
    with pytest.raises(SchemaNotFound):
        manager.get_schema_migrator("Nope")


def test_default_schema_lookup(fake_db):
    manager = MigrationsManager(
        [SchemaExecutor(DEFAULT_SCHEMA_NAME, [RecordingStep("1.0.0", schema_name=DEFAULT_SCHEMA_NAME)])],
        MigrationRunner(fake_db),
    )
    assert manager.get_schema_migrator().schema_name == DEFAULT_SCHEMA_NAME


def test_add_resorts(manager):
    manager.add(executor("Top", 99))
    assert manager.schema_names()[0] == "Top"
    assert manager.get_schema_migrator("Top").runner is manager.runner


def test_add_duplicate_rejected(manager):
    with pytest.raises(DuplicateSchemaError):
        manager.add(executor("Low", 3))


@pytest.mark.asyncio
async def test_install_all_schemas_in_priority_order(manager, fake_db):
    await manager.install_all_schemas()
    assert [a[0] for a in fake_db.applied] == ["High", "Alpha", "Beta", "Low"]


@pytest.mark.asyncio
async def test_run_delegates_to_runner(manager, fake_db):
    await manager.run(RecordingStep("3.0.0", schema_name="Adhoc"))
    assert fake_db.applied == [("Adhoc", None, "3.0.0")]
