"""Builder — turns a MigrationConfig into a manager or an automatic migrator.

    config = MigrationConfig(
        db=db,
        step_sources=[ModuleStepSource("myapp.migrations"), SqliteTrackingSource()],
        repository=SqliteMigrationRepository(db),
        unit_of_work_creator=SqliteTransactionManager(),
    )
    report = await DatabaseMigration(config).perform_automatic_migrations()

Every schema graph is validated while building, so configuration errors
surface before anything touches the datastore.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from schemaflow.automatic import AutomaticMigration, MigrationReport
from schemaflow.discovery import ActivatorResolver, Resolver, StepSource, resolve_steps
from schemaflow.exceptions import MissingRepositoryError, NoMigrationsFound
from schemaflow.executor import SchemaExecutor
from schemaflow.manager import MigrationsManager
from schemaflow.runner import LogSink, MigrationRunner
from schemaflow.step import MigrationStep
from schemaflow.tracking import (
    AutomaticMigrationRepository,
    NoTransactionSupport,
    UnitOfWorkCreator,
    utcnow,
)
from schemaflow.types import AUTOMATIC_MIGRATION_SCHEMA_NAME, Database, SchemaName

_logger = logging.getLogger(__name__)


@dataclass
class MigrationConfig:
    """Everything a migration run needs, as explicit named fields."""

    db: Database
    step_sources: list[StepSource] = field(default_factory=list)
    log: LogSink | None = None
    resolver: Resolver = field(default_factory=ActivatorResolver)
    repository: AutomaticMigrationRepository | None = None
    unit_of_work_creator: UnitOfWorkCreator = field(default_factory=NoTransactionSupport)
    bootstrap_schema: SchemaName = AUTOMATIC_MIGRATION_SCHEMA_NAME
    continue_on_error: bool = False


class DatabaseMigration:
    def __init__(self, config: MigrationConfig) -> None:
        self.config = config

    def discover(self) -> list[MigrationStep]:
        steps: list[MigrationStep] = []
        for source in self.config.step_sources:
            steps.extend(resolve_steps(source.discover(), self.config.resolver))
        return steps

    def build(self) -> MigrationsManager:
        steps = self.discover()
        if not steps:
            raise NoMigrationsFound("None of the step sources provided any migrations")

        groups: dict[SchemaName, list[MigrationStep]] = defaultdict(list)
        for step in steps:
            groups[step.schema_name].append(step)

        runner = MigrationRunner(self.config.db, self.config.log)
        executors = []
        for schema_name, group in groups.items():
            executor = SchemaExecutor(schema_name, group)
            _validate(executor)
            executors.append(executor)

        _logger.info(
            "Built %d schema(s) from %d step(s)", len(executors), len(steps)
        )
        return MigrationsManager(executors, runner)

    async def build_automatic_migrator(self) -> AutomaticMigration:
        """Build, check the bootstrap schema, then bring it up to date."""
        migrator = self.automatic_migrator()
        await migrator.update_self()
        return migrator

    async def perform_automatic_migrations(self, *schemas: SchemaName) -> MigrationReport:
        """Install or upgrade the given schemas, or all of them."""
        bootstrap = self.config.bootstrap_schema.lower()
        wanted = [s for s in schemas if s.lower() != bootstrap]
        migrator = await self.build_automatic_migrator()
        if schemas and not wanted:
            # Only the bootstrap schema was asked for and it is current now
            return MigrationReport(finished_at=utcnow())
        return await migrator.execute(
            *wanted, continue_on_error=self.config.continue_on_error
        )

    def automatic_migrator(self) -> AutomaticMigration:
        """Build the automatic migrator without running its bootstrap yet."""
        if self.config.repository is None:
            raise MissingRepositoryError(
                "Automatic migration needs an AutomaticMigrationRepository"
            )
        return AutomaticMigration(
            self.config.db,
            self.config.repository,
            self.config.unit_of_work_creator,
            self.build(),
            bootstrap_schema=self.config.bootstrap_schema,
        )


def _validate(executor: SchemaExecutor) -> None:
    graph = executor.graph
    graph.latest_version()
    if graph.has_install_path:
        graph.path_from_root()
