"""schemaflow CLI — migrate, inspect and untrack schemas of a SQLite database.

`schemaflow migrate --package myapp.migrations` brings every schema up to
date. The exit status is 0 only when every requested schema ended at its
latest version.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite
import typer
from rich.console import Console
from rich.table import Table

from schemaflow.automatic import MigrationReport, OutcomeStatus
from schemaflow.cli.context import run_async, sqlite_migration
from schemaflow.config import settings
from schemaflow.exceptions import (
    ConfigurationError,
    ExecutionError,
    MigrationLookupError,
    MigrationRunError,
    SchemaMigrationError,
)
from schemaflow.sqlite import SqliteTransactionManager

console = Console()

typer_app = typer.Typer(
    name="schemaflow",
    help="schemaflow -- versioned, ordered schema migrations.",
    no_args_is_help=True,
)

_STATUS_STYLE = {
    OutcomeStatus.INSTALLED: "bold green",
    OutcomeStatus.UPGRADED: "green",
    OutcomeStatus.SKIPPED: "dim",
    OutcomeStatus.FAILED: "bold red",
    OutcomeStatus.CANCELLED: "yellow",
    OutcomeStatus.PENDING: "yellow",
}


@typer_app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Python log level"),
):
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


def _db_path(db: Path | None) -> Path:
    return db or settings.db_path


def _print_report(report: MigrationReport) -> None:
    if not report.outcomes:
        console.print("[dim]No schemas to migrate.[/dim]")
        return

    table = Table(title="Migration run")
    table.add_column("Schema", style="cyan")
    table.add_column("From", style="white")
    table.add_column("To", style="white")
    table.add_column("Outcome")
    table.add_column("Steps", justify="right")
    table.add_column("Error", style="red")

    for o in report.outcomes:
        style = _STATUS_STYLE.get(o.status, "white")
        table.add_row(
            o.schema_name,
            o.start_version or "-",
            o.target_version or "-",
            f"[{style}]{o.status.value}[/{style}]",
            str(o.steps_executed),
            o.error[:120],
        )
    console.print(table)


def _fail(message: str, code: int = 2) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code)


@typer_app.command("migrate")
def migrate(
    db: Path = typer.Option(None, "--db", help="SQLite database file"),
    package: str = typer.Option(None, "--package", "-p", help="Package holding m_*.py migrations"),
    schema: list[str] = typer.Option(None, "--schema", "-s", help="Only these schemas (repeatable)"),
    continue_on_error: bool = typer.Option(
        False, "--continue-on-error", help="Attempt every schema, report failures at the end"
    ),
):
    """Install or upgrade schemas to their latest version."""
    package = package or settings.migrations_package

    async def _migrate() -> MigrationReport:
        async with aiosqlite.connect(_db_path(db)) as conn:
            migration = sqlite_migration(
                conn,
                package,
                continue_on_error=continue_on_error or settings.continue_on_error,
                log=lambda line: console.print(f"[dim]{line}[/dim]"),
            )
            return await migration.perform_automatic_migrations(*(schema or []))

    try:
        report = run_async(_migrate())
    except (MigrationRunError, SchemaMigrationError) as e:
        if e.report is not None:
            _print_report(e.report)
        _fail(str(e), code=1)
    except (ConfigurationError, MigrationLookupError) as e:
        _fail(str(e))

    _print_report(report)
    if not report.succeeded:
        raise typer.Exit(1)


@typer_app.command("status")
def status(
    db: Path = typer.Option(None, "--db", help="SQLite database file"),
    package: str = typer.Option(None, "--package", "-p", help="Package holding m_*.py migrations"),
):
    """Show installed and latest version of every schema."""
    package = package or settings.migrations_package

    async def _status():
        async with aiosqlite.connect(_db_path(db)) as conn:
            migrator = sqlite_migration(conn, package).automatic_migrator()
            return await migrator.status()

    try:
        rows = run_async(_status())
    except (ConfigurationError, MigrationLookupError) as e:
        _fail(str(e))

    table = Table(title="Schemas")
    table.add_column("Schema", style="cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Installed", style="white")
    table.add_column("Latest", style="white")
    table.add_column("State")
    for row in rows:
        if row.installed_version is None:
            state = "[yellow]not installed[/yellow]"
        elif row.up_to_date:
            state = "[green]current[/green]"
        else:
            state = "[yellow]behind[/yellow]"
        table.add_row(
            row.schema_name,
            str(row.priority),
            row.installed_version or "-",
            row.latest_version,
            state,
        )
    console.print(table)


@typer_app.command("untrack")
def untrack(
    names: list[str] = typer.Argument(help="Schemas whose version records are removed"),
    db: Path = typer.Option(None, "--db", help="SQLite database file"),
    package: str = typer.Option(None, "--package", "-p", help="Package holding m_*.py migrations"),
):
    """Forget recorded versions so the schemas are installed again next run."""
    package = package or settings.migrations_package

    async def _untrack():
        async with aiosqlite.connect(_db_path(db)) as conn:
            migrator = sqlite_migration(conn, package).automatic_migrator()
            await migrator.untrack(*names)

    try:
        run_async(_untrack())
    except (ConfigurationError, MigrationLookupError) as e:
        _fail(str(e))
    console.print(f"[green]Untracked {', '.join(names)}[/green]")


@typer_app.command("install-all")
def install_all(
    db: Path = typer.Option(None, "--db", help="SQLite database file"),
    package: str = typer.Option(None, "--package", "-p", help="Package holding m_*.py migrations"),
):
    """Install every schema from scratch without recording versions."""
    package = package or settings.migrations_package

    async def _install() -> int:
        async with aiosqlite.connect(_db_path(db)) as conn:
            manager = sqlite_migration(
                conn, package, log=lambda line: console.print(f"[dim]{line}[/dim]")
            ).build()
            async with SqliteTransactionManager().start_unit_of_work(conn, tag="install-all") as uow:
                executed = await manager.install_all_schemas()
                await uow.commit()
            return len(executed)

    try:
        count = run_async(_install())
    except (ConfigurationError, MigrationLookupError) as e:
        _fail(str(e))
    except ExecutionError as e:
        _fail(f"{e}: {e.__cause__}", code=1)
    console.print(f"[green]Installed all schemas ({count} step(s))[/green]")


@typer_app.command("version")
def version_cmd():
    """Show schemaflow version."""
    from schemaflow import __version__
    console.print(f"schemaflow v{__version__}")


def app(args: list[str] | None = None) -> None:
    """Console script entry point."""
    typer_app(args=args, prog_name="schemaflow")
