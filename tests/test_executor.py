"""Tests for the schema executor."""

import pytest

from schemaflow.exceptions import StepNotFound, VersionNotFound
from schemaflow.executor import SchemaExecutor
from schemaflow.runner import MigrationRunner
from schemaflow.types import parse_version

from tests.conftest import FakeDatabase, RecordingStep


def plop_steps():
    return [
        RecordingStep("1.0.0", priority=1),
        RecordingStep("1.1.0", "1.0.0", priority=7),
        RecordingStep("1.2.0", "1.1.0"),
    ]


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def executor(fake_db):
    return SchemaExecutor("Plop", plop_steps(), MigrationRunner(fake_db))


def test_latest_and_priority(executor):
    assert executor.latest_version_available == parse_version("1.2.0")
    assert executor.priority == 7
    assert executor.is_latest("1.2.0")
    assert not executor.is_latest("1.1.0")
    assert not executor.is_latest(None)


@pytest.mark.asyncio
async def test_install_schema(executor, fake_db):
    executed = await executor.install_schema()
    assert len(executed) == 3
    assert fake_db.applied == [
        ("Plop", None, "1.0.0"),
        ("Plop", "1.0.0", "1.1.0"),
        ("Plop", "1.1.0", "1.2.0"),
    ]


@pytest.mark.asyncio
async def test_migrate_to_latest_from(executor, fake_db):
    await executor.migrate_to_latest_from("1.0.0")
    assert fake_db.applied == [("Plop", "1.0.0", "1.1.0"), ("Plop", "1.1.0", "1.2.0")]


@pytest.mark.asyncio
async def test_migrate_to_latest_when_current_is_noop(executor, fake_db):
    assert await executor.migrate_to_latest_from("1.2.0") == []
    assert fake_db.applied == []


@pytest.mark.asyncio
async def test_migrate_from_unknown_version(executor):
    with pytest.raises(VersionNotFound):
        await executor.migrate_to_latest_from("0.1.0")


@pytest.mark.asyncio
async def test_migrate_single_step(executor, fake_db):
    await executor.migrate("1.0.0", "1.1.0")
    assert fake_db.applied == [("Plop", "1.0.0", "1.1.0")]


@pytest.mark.asyncio
async def test_migrate_single_step_not_found(executor, fake_db):
    with pytest.raises(StepNotFound):
        await executor.migrate("1.0.0", "1.2.0")
    assert fake_db.applied == []


@pytest.mark.asyncio
async def test_executor_without_runner():
    executor = SchemaExecutor("Plop", plop_steps())
    with pytest.raises(RuntimeError):
        await executor.install_schema()
