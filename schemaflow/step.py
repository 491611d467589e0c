"""Migration steps — one edge of a schema's version graph.

A step moves a schema from a source version to a target version. A step
without a source is a root step: it installs the schema from nothing.

Metadata can be declared on the class:

    class CreatePlopTable(MigrationStep):
        schema_name = "Plop"
        target = "1.0.0"

        async def execute(self, db):
            await db.execute("CREATE TABLE plop (id INTEGER PRIMARY KEY)")

or attached to a plain coroutine with the `migration` decorator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from packaging.version import Version

from schemaflow.exceptions import InvalidStepError
from schemaflow.types import (
    DEFAULT_SCHEMA_NAME,
    Database,
    SchemaName,
    parse_optional_version,
    parse_version,
)

StepAction = Callable[[Database], Awaitable[None]]


class MigrationStep(ABC):
    """Base class for migration steps.

    Subclasses set `schema_name`, `source`, `target` and `priority` as class
    attributes (strings are fine) or pass them to __init__. The values are
    parsed once and never change afterwards.
    """

    schema_name: SchemaName = DEFAULT_SCHEMA_NAME
    source: Version | str | None = None
    target: Version | str | None = None
    priority: int = 0

    def __init__(
        self,
        *,
        target: Version | str | None = None,
        source: Version | str | None = None,
        schema_name: SchemaName | None = None,
        priority: int | None = None,
    ) -> None:
        cls = type(self)
        raw_target = target if target is not None else cls.target
        raw_source = source if source is not None else cls.source
        if raw_target is None or raw_target == "":
            raise InvalidStepError(f"{cls.__name__} must declare a target version")

        self.schema_name = schema_name or cls.schema_name or DEFAULT_SCHEMA_NAME
        self.target = parse_version(raw_target)
        self.source = parse_optional_version(raw_source)
        self.priority = int(priority if priority is not None else cls.priority)

    @property
    def is_root(self) -> bool:
        """True for steps that install the schema from nothing."""
        return self.source is None

    @property
    def edge(self) -> tuple[Version | None, Version]:
        return (self.source, self.target)

    @abstractmethod
    async def execute(self, db: Database) -> None:
        """Apply the step. Runs inside the caller's unit of work."""

    def describe(self) -> str:
        start = str(self.source) if self.source is not None else "(new)"
        return f"'{self.schema_name}' {start} -> {self.target}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()} priority={self.priority}>"


class FunctionStep(MigrationStep):
    """A step whose action is a plain coroutine function."""

    def __init__(
        self,
        action: StepAction,
        *,
        target: Version | str,
        source: Version | str | None = None,
        schema_name: SchemaName = DEFAULT_SCHEMA_NAME,
        priority: int = 0,
    ) -> None:
        super().__init__(
            target=target, source=source, schema_name=schema_name, priority=priority
        )
        self.action = action
        self.name = getattr(action, "__name__", "step")

    async def execute(self, db: Database) -> None:
        await self.action(db)

    def __repr__(self) -> str:
        return f"<FunctionStep {self.name} {self.describe()}>"


def migration(
    target: Version | str,
    source: Version | str | None = None,
    *,
    schema: SchemaName = DEFAULT_SCHEMA_NAME,
    priority: int = 0,
) -> Callable[[StepAction], FunctionStep]:
    """Decorator: turn `async def fn(db)` into a FunctionStep."""

    def decorate(action: StepAction) -> FunctionStep:
        return FunctionStep(
            action, target=target, source=source, schema_name=schema, priority=priority
        )

    return decorate
