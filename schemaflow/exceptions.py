"""Custom exception hierarchy for schemaflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from schemaflow.automatic import MigrationReport


class SchemaflowError(Exception):
    """Base for all schemaflow errors."""


# ── Configuration errors: fatal, raised before the datastore is touched ──────


class ConfigurationError(SchemaflowError):
    """The discovered migration steps do not form a usable setup."""


class NoStepsFound(ConfigurationError):
    """A schema graph was built from an empty step set."""


class NoMigrationsFound(ConfigurationError):
    """Discovery produced no migration steps at all."""


class AmbiguousLatestVersion(ConfigurationError):
    """More than one sink is reachable from the root of a schema graph."""


class AmbiguousPath(ConfigurationError):
    """Several shortest paths lead to the latest version."""


class CyclicMigrationGraph(ConfigurationError):
    """The steps of a schema form a cycle."""


class DuplicateStepError(ConfigurationError):
    """Two steps of one schema declare the same source/target edge."""


class DuplicateSchemaError(ConfigurationError):
    """A schema executor with the same name is already registered."""


class InvalidStepError(ConfigurationError):
    """A step is missing its target or does not move the version forward."""


class InvalidVersionError(ConfigurationError, ValueError):
    """A version string could not be parsed."""


class NoInstallPath(ConfigurationError):
    """The schema has no root step, so it cannot be installed from scratch."""


class MissingBootstrapSchema(ConfigurationError):
    """The reserved self-tracking schema is not among the discovered steps."""


class MissingRepositoryError(ConfigurationError):
    """Automatic migration was requested without a repository."""


# ── Lookup errors: recorded state drifted from the available steps ───────────


class MigrationLookupError(SchemaflowError, LookupError):
    """Base for failed lookups of versions, steps and schemas."""


class VersionNotFound(MigrationLookupError):
    """The version is not a node of the schema graph."""


class NoUpgradePath(MigrationLookupError):
    """No forward path leads from the installed version to the latest one."""


class StepNotFound(MigrationLookupError):
    """No step matches the requested source/target pair."""


class SchemaNotFound(MigrationLookupError):
    """No schema executor is registered under the given name."""


# ── Execution errors ─────────────────────────────────────────────────────────


class ExecutionError(SchemaflowError):
    """Base for failures raised while steps run against the datastore."""


class StepExecutionError(ExecutionError):
    """A single step action failed. The original error is the __cause__."""

    def __init__(self, schema_name: str, source: object, target: object) -> None:
        self.schema_name = schema_name
        self.source = source
        self.target = target
        start = source if source is not None else "nothing"
        super().__init__(
            f"Migration of schema '{schema_name}' from {start} to {target} failed"
        )


class SchemaMigrationError(ExecutionError):
    """A schema could not be brought up to date; its unit of work rolled back."""

    def __init__(
        self,
        schema_name: str,
        start_version: str | None,
        target_version: str | None,
        reason: str = "",
    ) -> None:
        self.schema_name = schema_name
        self.start_version = start_version
        self.target_version = target_version
        self.report: MigrationReport | None = None
        start = start_version or "nothing"
        message = (
            f"Schema '{schema_name}' failed to migrate from {start} "
            f"to {target_version}"
        )
        if reason:
            message += f": {reason}"
        super().__init__(message)


class MigrationRunError(ExecutionError):
    """One or more schemas failed during a best-effort run."""

    def __init__(
        self,
        failures: list[SchemaMigrationError],
        report: MigrationReport | None = None,
    ) -> None:
        self.failures = failures
        self.report = report
        names = ", ".join(f.schema_name for f in failures)
        super().__init__(f"{len(failures)} schema(s) failed to migrate: {names}")


# ── Signals ──────────────────────────────────────────────────────────────────


class AlreadyLatest(Exception):
    """The installed version already is the latest one. Not a failure."""

    def __init__(self, schema_name: str, version: object) -> None:
        self.schema_name = schema_name
        self.version = version
        super().__init__(f"Schema '{schema_name}' is already at version {version}")
