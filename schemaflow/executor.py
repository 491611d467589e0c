"""Schema executor — install and upgrade one schema through its graph."""

from __future__ import annotations

from typing import Iterable

from packaging.version import Version

from schemaflow.exceptions import AlreadyLatest
from schemaflow.graph import SchemaGraph
from schemaflow.runner import MigrationRunner
from schemaflow.step import MigrationStep
from schemaflow.types import SchemaName, parse_version


class SchemaExecutor:
    """Wraps the graph of a single schema.

    Holds no state beyond the graph; the runner is shared and injected by
    the migrations manager.
    """

    def __init__(
        self,
        schema_name: SchemaName,
        steps: Iterable[MigrationStep],
        runner: MigrationRunner | None = None,
    ) -> None:
        self.schema_name = schema_name
        self.graph = SchemaGraph(schema_name, steps)
        self.runner = runner

    @property
    def priority(self) -> int:
        """Highest priority declared by any step of the schema."""
        return max(step.priority for step in self.graph.steps)

    @property
    def latest_version_available(self) -> Version:
        return self.graph.latest_version()

    def is_latest(self, version: Version | str | None) -> bool:
        if version is None:
            return False
        return self.graph.latest_version() == parse_version(version)

    async def install_schema(self) -> list[MigrationStep]:
        return await self._run(self.graph.path_from_root())

    async def migrate_to_latest_from(
        self, installed: Version | str
    ) -> list[MigrationStep]:
        try:
            path = self.graph.path_from(installed)
        except AlreadyLatest:
            return []
        return await self._run(path)

    async def migrate(
        self, current: Version | str | None, next_version: Version | str
    ) -> list[MigrationStep]:
        """Run exactly the step going from `current` to `next_version`."""
        return await self._run([self.graph.find_step(current, next_version)])

    async def _run(self, steps: list[MigrationStep]) -> list[MigrationStep]:
        if self.runner is None:
            raise RuntimeError(
                f"Schema executor '{self.schema_name}' has no migration runner"
            )
        return await self.runner.run_all(steps)

    def __repr__(self) -> str:
        return f"<SchemaExecutor {self.schema_name!r} priority={self.priority}>"
