"""Automatic migration — bring every schema up to date, tracking versions.

A run has two phases:

1. Bootstrap. The migrator tracks versions in a schema of its own (by
   default "AutomaticMigration"). That schema is installed or upgraded
   first, inside one unit of work.
2. Per-schema pass. Every other schema, highest priority first, gets its
   own unit of work: read the installed version, install or upgrade to
   the latest version, record it, commit. A failure rolls back only the
   failing schema; schemas committed earlier keep their new version.

Runs are strictly sequential and assume no other migrator is working on
the same datastore. Serializing concurrent runs is up to the caller.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from schemaflow.exceptions import (
    MigrationRunError,
    MissingBootstrapSchema,
    SchemaMigrationError,
    SchemaNotFound,
)
from schemaflow.executor import SchemaExecutor
from schemaflow.manager import MigrationsManager
from schemaflow.step import MigrationStep
from schemaflow.tracking import AutomaticMigrationRepository, UnitOfWorkCreator, utcnow
from schemaflow.types import AUTOMATIC_MIGRATION_SCHEMA_NAME, Database, SchemaName

logger = structlog.get_logger()


# ── Reporting ─────────────────────────────────────────────────────────────────


class OutcomeStatus(str, Enum):
    PENDING = "pending"
    INSTALLED = "installed"
    UPGRADED = "upgraded"
    SKIPPED = "skipped"  # already at the latest version
    FAILED = "failed"
    CANCELLED = "cancelled"


_DONE = {OutcomeStatus.INSTALLED, OutcomeStatus.UPGRADED, OutcomeStatus.SKIPPED}


class SchemaOutcome(BaseModel):
    """What happened to one schema during a run."""

    schema_name: SchemaName
    start_version: str | None = None
    target_version: str | None = None
    status: OutcomeStatus = OutcomeStatus.PENDING
    steps_executed: int = 0
    error: str = ""

    @property
    def at_latest(self) -> bool:
        return self.status in _DONE


class MigrationReport(BaseModel):
    outcomes: list[SchemaOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        """True when every schema ended at its latest version."""
        return all(o.at_latest for o in self.outcomes)

    @property
    def failed(self) -> list[SchemaOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def steps_executed(self) -> int:
        return sum(o.steps_executed for o in self.outcomes)

    def outcome(self, schema_name: SchemaName) -> SchemaOutcome:
        for o in self.outcomes:
            if o.schema_name == schema_name:
                return o
        raise SchemaNotFound(f"Schema '{schema_name}' is not part of this report")


class SchemaStatus(BaseModel):
    schema_name: SchemaName
    installed_version: str | None = None
    latest_version: str
    priority: int = 0

    @property
    def up_to_date(self) -> bool:
        return self.installed_version is not None and (
            self.installed_version == self.latest_version
        )


# ── Orchestrator ──────────────────────────────────────────────────────────────


class AutomaticMigration:
    """Drives the schema executors of a MigrationsManager for one run."""

    def __init__(
        self,
        db: Database,
        repository: AutomaticMigrationRepository,
        unit_of_work_creator: UnitOfWorkCreator,
        manager: MigrationsManager,
        bootstrap_schema: SchemaName = AUTOMATIC_MIGRATION_SCHEMA_NAME,
    ) -> None:
        self._db = db
        self._repository = repository
        self._uow = unit_of_work_creator
        self._manager = manager
        self.bootstrap_schema = bootstrap_schema
        if bootstrap_schema not in manager:
            raise MissingBootstrapSchema(
                f"Required schema '{bootstrap_schema}' not found"
            )
        self._bootstrap = manager.get_schema_migrator(bootstrap_schema)
        self.bootstrapped = False

    @property
    def schemas(self) -> list[SchemaExecutor]:
        """User schemas in processing order, without the bootstrap schema."""
        return [
            s for s in self._manager.schemas if s.schema_name != self.bootstrap_schema
        ]

    # ── Phase 1: bootstrap ──────────────────────────────────────────

    async def update_self(self) -> list[MigrationStep]:
        """Install or upgrade the tracking schema."""
        executor = self._bootstrap
        name = executor.schema_name
        latest = str(executor.latest_version_available)
        installed: str | None = None
        try:
            async with self._uow.start_unit_of_work(self._db, tag="bootstrap") as uow:
                executed: list[MigrationStep] = []
                if await self._repository.is_migrations_initialized():
                    installed = await self._repository.get_installed_version(name)

                if not installed:
                    executed = await executor.install_schema()
                elif not executor.is_latest(installed):
                    executed = await executor.migrate_to_latest_from(installed)

                if executed:
                    await self._repository.append_version(name, latest)
                await uow.commit()
        except Exception as exc:
            logger.error("bootstrap.failed", schema=name, error=str(exc))
            raise SchemaMigrationError(name, installed, latest, str(exc)) from exc

        self.bootstrapped = True
        if executed:
            logger.info(
                "bootstrap.updated", schema=name, start=installed, version=latest
            )
        else:
            logger.debug("bootstrap.current", schema=name, version=latest)
        return executed

    # ── Phase 2: user schemas ───────────────────────────────────────

    async def execute(
        self,
        *schemas: SchemaName,
        continue_on_error: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> MigrationReport:
        """Install or upgrade the given schemas (all of them when none given).

        Fails fast on the first broken schema unless `continue_on_error`
        is set, in which case every schema is attempted and the failures
        are raised together. `cancel` is only checked between schemas.
        """
        if not self.bootstrapped:
            await self.update_self()

        selected = self._select(schemas)
        report = MigrationReport(
            outcomes=[SchemaOutcome(schema_name=s.schema_name) for s in selected]
        )
        failures: list[SchemaMigrationError] = []

        for executor, outcome in zip(selected, report.outcomes):
            if cancel is not None and cancel.is_set():
                outcome.status = OutcomeStatus.CANCELLED
                logger.warning("schema.cancelled", schema=executor.schema_name)
                continue
            try:
                await self._migrate_schema(executor, outcome)
            except SchemaMigrationError as err:
                failures.append(err)
                if not continue_on_error:
                    report.finished_at = utcnow()
                    err.report = report
                    raise

        report.finished_at = utcnow()
        if failures:
            raise MigrationRunError(failures, report)
        return report

    async def _migrate_schema(
        self, executor: SchemaExecutor, outcome: SchemaOutcome
    ) -> None:
        name = executor.schema_name
        try:
            latest = str(executor.latest_version_available)
            outcome.target_version = latest
            async with self._uow.start_unit_of_work(self._db, tag=name) as uow:
                installed = await self._repository.get_installed_version(name)
                outcome.start_version = installed

                if not installed:
                    executed = await executor.install_schema()
                    status = OutcomeStatus.INSTALLED
                elif executor.is_latest(installed):
                    await uow.commit()
                    outcome.status = OutcomeStatus.SKIPPED
                    logger.debug("schema.skipped", schema=name, version=installed)
                    return
                else:
                    executed = await executor.migrate_to_latest_from(installed)
                    status = OutcomeStatus.UPGRADED

                await self._repository.append_version(name, latest)
                await uow.commit()
        except Exception as exc:
            outcome.status = OutcomeStatus.FAILED
            outcome.error = str(exc.__cause__ or exc)
            logger.error(
                "schema.failed",
                schema=name,
                start=outcome.start_version,
                target=outcome.target_version,
                error=outcome.error,
            )
            raise SchemaMigrationError(
                name, outcome.start_version, outcome.target_version, outcome.error
            ) from exc

        outcome.status = status
        outcome.steps_executed = len(executed)
        logger.info(
            f"schema.{status.value}",
            schema=name,
            start=outcome.start_version,
            version=latest,
            steps=len(executed),
        )

    def _select(self, names: tuple[SchemaName, ...]) -> list[SchemaExecutor]:
        candidates = self.schemas
        if not names:
            return candidates
        bootstrap = self.bootstrap_schema.lower()
        wanted = [n for n in names if n.lower() != bootstrap]
        known = {s.schema_name for s in candidates}
        unknown = [n for n in wanted if n not in known]
        if unknown:
            raise SchemaNotFound(f"Unknown schema(s): {', '.join(unknown)}")
        return [s for s in candidates if s.schema_name in wanted]

    # ── Maintenance ─────────────────────────────────────────────────

    async def status(self, *schemas: SchemaName) -> list[SchemaStatus]:
        """Installed vs latest version per schema. Changes nothing."""
        executors = [self._bootstrap, *self._select(schemas)]
        initialized = await self._repository.is_migrations_initialized()
        result = []
        for executor in executors:
            installed = None
            if initialized:
                installed = await self._repository.get_installed_version(
                    executor.schema_name
                )
            latest = executor.latest_version_available
            if installed and executor.is_latest(installed):
                installed = str(latest)
            result.append(
                SchemaStatus(
                    schema_name=executor.schema_name,
                    installed_version=installed,
                    latest_version=str(latest),
                    priority=executor.priority,
                )
            )
        return result

    async def untrack(self, *schemas: SchemaName) -> None:
        """Forget the recorded versions so the schemas get installed again."""
        if not schemas:
            return
        async with self._uow.start_unit_of_work(self._db, tag="untrack") as uow:
            await self._repository.untrack_schemas(list(schemas))
            await uow.commit()
        logger.info("schema.untracked", schemas=list(schemas))
