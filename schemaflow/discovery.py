"""Step discovery — where migration steps come from.

A step source hands the builder a plain collection of steps. It may yield
ready instances or MigrationStep subclasses; classes are instantiated by the
builder's resolver, so steps can receive their own dependencies.

ModuleStepSource scans a Python package for modules named
`m_NNN_description.py`. Each module either declares module-level metadata
plus an `upgrade` coroutine:

    SCHEMA = "Plop"
    SOURCE = "1.0.0"      # omit for a root step
    TARGET = "1.1.0"
    PRIORITY = 0

    async def upgrade(db): ...

or defines concrete MigrationStep subclasses.
"""

from __future__ import annotations

import importlib
import inspect
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Iterable, Union

from schemaflow.step import FunctionStep, MigrationStep
from schemaflow.types import DEFAULT_SCHEMA_NAME

_logger = logging.getLogger(__name__)

MIGRATION_PREFIX = "m_"

StepDeclaration = Union[MigrationStep, type[MigrationStep]]


# ── Resolvers ─────────────────────────────────────────────────────────────────


class Resolver(ABC):
    """Builds step instances from step classes."""

    @abstractmethod
    def resolve(self, cls: type) -> Any: ...


class ActivatorResolver(Resolver):
    """Calls the class without arguments. Abstract classes resolve to None."""

    def resolve(self, cls: type) -> Any:
        if inspect.isabstract(cls):
            return None
        return cls()


class FactoryResolver(Resolver):
    """Delegates to a callable, e.g. a DI container's `get` method."""

    def __init__(self, factory: Callable[[type], Any]) -> None:
        self._factory = factory

    def resolve(self, cls: type) -> Any:
        return self._factory(cls)


# ── Sources ───────────────────────────────────────────────────────────────────


class StepSource(ABC):
    @abstractmethod
    def discover(self) -> Iterable[StepDeclaration]: ...


class StaticStepSource(StepSource):
    """A fixed collection of steps or step classes."""

    def __init__(self, *steps: StepDeclaration) -> None:
        self._steps = list(steps)

    def discover(self) -> list[StepDeclaration]:
        return list(self._steps)


class ModuleStepSource(StepSource):
    """Imports the `m_*.py` modules of a package and collects their steps."""

    def __init__(self, package: str, prefix: str = MIGRATION_PREFIX) -> None:
        self.package = package
        self.prefix = prefix

    def discover(self) -> list[StepDeclaration]:
        pkg = importlib.import_module(self.package)
        pkg_file = getattr(pkg, "__file__", None)
        if pkg_file is None:
            raise ValueError(f"{self.package} is not a regular package")
        directory = Path(pkg_file).parent

        found: list[StepDeclaration] = []
        seen: set[int] = set()
        for path in sorted(directory.glob(f"{self.prefix}*.py")):
            module = importlib.import_module(f"{self.package}.{path.stem}")
            steps = _steps_in_module(module)
            if not steps:
                _logger.warning("Migration module %s declares no steps", module.__name__)
            # A step imported from a sibling module is the same object
            for step in steps:
                if id(step) not in seen:
                    seen.add(id(step))
                    found.append(step)
        _logger.debug("Discovered %d step(s) in %s", len(found), self.package)
        return found


def _steps_in_module(module: ModuleType) -> list[StepDeclaration]:
    steps: list[StepDeclaration] = []

    upgrade = getattr(module, "upgrade", None)
    target = getattr(module, "TARGET", None)
    if upgrade is not None and target is not None:
        steps.append(
            FunctionStep(
                upgrade,
                target=target,
                source=getattr(module, "SOURCE", None),
                schema_name=getattr(module, "SCHEMA", DEFAULT_SCHEMA_NAME),
                priority=getattr(module, "PRIORITY", 0),
            )
        )

    for _, obj in inspect.getmembers(module, inspect.isclass):
        if (
            issubclass(obj, MigrationStep)
            and obj.__module__ == module.__name__
            and not inspect.isabstract(obj)
        ):
            steps.append(obj)

    for _, obj in inspect.getmembers(module, lambda o: isinstance(o, MigrationStep)):
        steps.append(obj)

    return steps


def resolve_steps(
    declarations: Iterable[StepDeclaration], resolver: Resolver
) -> list[MigrationStep]:
    """Turn step declarations into instances, skipping what cannot be built."""
    steps: list[MigrationStep] = []
    for declaration in declarations:
        if isinstance(declaration, MigrationStep):
            steps.append(declaration)
            continue
        instance = resolver.resolve(declaration)
        if instance is None:
            _logger.debug("Resolver returned nothing for %s", declaration)
            continue
        if not isinstance(instance, MigrationStep):
            raise TypeError(
                f"Resolver built {type(instance).__name__} for {declaration}, "
                "expected a MigrationStep"
            )
        steps.append(instance)
    return steps
