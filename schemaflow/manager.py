"""Migrations manager — the set of schema executors, in priority order."""

from __future__ import annotations

import logging
from typing import Iterable

from schemaflow.exceptions import DuplicateSchemaError, SchemaNotFound
from schemaflow.executor import SchemaExecutor
from schemaflow.runner import MigrationRunner
from schemaflow.step import MigrationStep
from schemaflow.types import DEFAULT_SCHEMA_NAME, SchemaName

_logger = logging.getLogger(__name__)


def _sorted(executors: Iterable[SchemaExecutor]) -> list[SchemaExecutor]:
    # Highest priority first; equal priorities fall back to the schema name
    return sorted(executors, key=lambda e: (-e.priority, e.schema_name))


class MigrationsManager:
    """Owns the schema executors and the runner they share."""

    def __init__(
        self, executors: Iterable[SchemaExecutor], runner: MigrationRunner
    ) -> None:
        self._runner = runner
        self._schemas: list[SchemaExecutor] = []
        for executor in executors:
            self._register(executor)
        self._schemas = _sorted(self._schemas)

    @property
    def schemas(self) -> list[SchemaExecutor]:
        return list(self._schemas)

    @property
    def runner(self) -> MigrationRunner:
        return self._runner

    def schema_names(self) -> list[SchemaName]:
        return [s.schema_name for s in self._schemas]

    def get_schema_migrator(
        self, schema_name: SchemaName = DEFAULT_SCHEMA_NAME
    ) -> SchemaExecutor:
        if not schema_name:
            raise ValueError("schema_name must not be empty")
        for executor in self._schemas:
            if executor.schema_name == schema_name:
                return executor
        raise SchemaNotFound(f"No migrations registered for schema '{schema_name}'")

    def __contains__(self, schema_name: object) -> bool:
        return any(s.schema_name == schema_name for s in self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)

    def add(self, executor: SchemaExecutor) -> None:
        self._register(executor)
        self._schemas = _sorted(self._schemas)

    async def install_all_schemas(self) -> list[MigrationStep]:
        """Install every schema from scratch, in priority order."""
        executed: list[MigrationStep] = []
        for executor in self._schemas:
            _logger.info("Installing schema %s", executor.schema_name)
            executed.extend(await executor.install_schema())
        return executed

    async def run(self, *steps: MigrationStep) -> list[MigrationStep]:
        return await self._runner.run_all(steps)

    def _register(self, executor: SchemaExecutor) -> None:
        if executor.schema_name in self:
            raise DuplicateSchemaError(
                f"Schema '{executor.schema_name}' is already registered"
            )
        executor.runner = self._runner
        self._schemas.append(executor)
