"""Tests for migration step declarations."""

import pytest

from schemaflow.exceptions import InvalidStepError
from schemaflow.step import FunctionStep, MigrationStep, migration
from schemaflow.types import DEFAULT_SCHEMA_NAME, parse_version


class CreatePlop(MigrationStep):
    schema_name = "Plop"
    target = "1.0.0"
    priority = 5

    async def execute(self, db):
        db.append("create")


class AlterPlop(MigrationStep):
    schema_name = "Plop"
    source = "1.0.0"
    target = "1.1.0"

    async def execute(self, db):
        db.append("alter")


def test_class_attributes_are_parsed():
    step = CreatePlop()
    assert step.schema_name == "Plop"
    assert step.target == parse_version("1.0.0")
    assert step.source is None
    assert step.is_root
    assert step.priority == 5


def test_upgrade_step():
    step = AlterPlop()
    assert not step.is_root
    assert step.edge == (parse_version("1.0.0"), parse_version("1.1.0"))
    assert step.describe() == "'Plop' 1.0.0 -> 1.1.0"


def test_constructor_overrides_class_attributes():
    step = AlterPlop(schema_name="Other", target="2.0.0", source="1.5.0")
    assert step.schema_name == "Other"
    assert step.source == parse_version("1.5.0")


def test_missing_target_rejected():
    class NoTarget(MigrationStep):
        async def execute(self, db):
            pass

    with pytest.raises(InvalidStepError):
        NoTarget()


def test_default_schema_name():
    step = FunctionStep(lambda db: None, target="1.0.0")
    assert step.schema_name == DEFAULT_SCHEMA_NAME


@pytest.mark.asyncio
async def test_execute_class_step():
    log = []
    await CreatePlop().execute(log)
    assert log == ["create"]


@pytest.mark.asyncio
async def test_migration_decorator():
    @migration("1.1.0", "1.0.0", schema="Plop", priority=2)
    async def add_column(db):
        db.append("add_column")

    assert isinstance(add_column, FunctionStep)
    assert add_column.name == "add_column"
    assert add_column.priority == 2
    assert add_column.source == parse_version("1.0.0")

    log = []
    await add_column.execute(log)
    assert log == ["add_column"]
