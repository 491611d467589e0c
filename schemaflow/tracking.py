"""Version tracking collaborators — repository and unit of work interfaces.

The engine never talks to the datastore about versions directly. It asks an
AutomaticMigrationRepository and wraps each schema pass in a UnitOfWork
obtained from a UnitOfWorkCreator. Concrete implementations live next to the
datastore they target (see schemaflow.sqlite).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable

from pydantic import BaseModel, Field

from schemaflow.types import Database, SchemaName


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationTrack(BaseModel):
    """One installed-version record. The most recent record per schema wins."""

    schema_name: SchemaName
    version: str
    updated_at: datetime = Field(default_factory=utcnow)


class AutomaticMigrationRepository(ABC):
    """Persists the installed version of each schema.

    Every method must be safe to call inside the unit of work's transaction.
    """

    @abstractmethod
    async def is_migrations_initialized(self) -> bool: ...

    @abstractmethod
    async def get_installed_version(self, schema_name: SchemaName) -> str | None: ...

    @abstractmethod
    async def append_version(self, schema_name: SchemaName, version: str) -> None: ...

    @abstractmethod
    async def untrack_schemas(self, schema_names: Iterable[SchemaName]) -> None: ...


class UnitOfWork(ABC):
    """Transactional scope around one schema pass.

    Use as an async context manager. Leaving the block without calling
    commit() rolls the work back, whatever the reason for leaving.
    """

    def __init__(self, tag: str = "") -> None:
        self.tag = tag
        self.committed = False

    async def __aenter__(self) -> UnitOfWork:
        await self._begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.committed:
            await self._rollback()

    async def commit(self) -> None:
        await self._commit()
        self.committed = True

    async def _begin(self) -> None:
        """Hook for backends that open transactions explicitly."""

    @abstractmethod
    async def _commit(self) -> None: ...

    @abstractmethod
    async def _rollback(self) -> None: ...


class UnitOfWorkCreator(ABC):
    @abstractmethod
    def start_unit_of_work(self, db: Database, tag: str = "") -> UnitOfWork: ...


class NoTransaction(UnitOfWork):
    """For datastores without transactions (search indexes, document stores)."""

    async def _commit(self) -> None:
        pass

    async def _rollback(self) -> None:
        pass


class NoTransactionSupport(UnitOfWorkCreator):
    def start_unit_of_work(self, db: Database, tag: str = "") -> UnitOfWork:
        return NoTransaction(tag)
