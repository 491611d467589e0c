"""Shared CLI plumbing — async bridge and migration setup for SQLite files."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine

import aiosqlite

from schemaflow.builder import DatabaseMigration, MigrationConfig
from schemaflow.config import settings
from schemaflow.discovery import ModuleStepSource, StepSource
from schemaflow.sqlite import (
    SqliteMigrationRepository,
    SqliteTrackingSource,
    SqliteTransactionManager,
)


def run_async(coro: Coroutine) -> Any:
    """Run an async coroutine from sync CLI code."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        # Already inside an event loop (embedded use); run on a fresh one
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)


def sqlite_migration(
    db: aiosqlite.Connection,
    package: str,
    continue_on_error: bool = False,
    log: Callable[[str], None] | None = None,
) -> DatabaseMigration:
    """Migration setup for a SQLite file: package steps plus the tracking schema."""
    sources: list[StepSource] = [SqliteTrackingSource(settings.bootstrap_schema)]
    if package:
        sources.append(ModuleStepSource(package))
    return DatabaseMigration(
        MigrationConfig(
            db=db,
            step_sources=sources,
            log=log,
            repository=SqliteMigrationRepository(db),
            unit_of_work_creator=SqliteTransactionManager(),
            bootstrap_schema=settings.bootstrap_schema,
            continue_on_error=continue_on_error,
        )
    )
