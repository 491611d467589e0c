"""Core types shared across all schemaflow subsystems."""

from __future__ import annotations

from typing import Any, TypeAlias

from packaging.version import InvalidVersion, Version

from schemaflow.exceptions import InvalidVersionError

# ── Names ─────────────────────────────────────────────────────────────────────

SchemaName: TypeAlias = str

# Steps that declare no schema land here
DEFAULT_SCHEMA_NAME: SchemaName = "_GlobalSchema"

# Reserved schema the automatic migrator uses to track itself
AUTOMATIC_MIGRATION_SCHEMA_NAME: SchemaName = "AutomaticMigration"

# Handle to the datastore (connection, API client, ...). Opaque to the engine.
Database: TypeAlias = Any


# ── Versions ──────────────────────────────────────────────────────────────────


def parse_version(value: str | Version) -> Version:
    """Parse a version such as "1.2.0" or "1.2.0-rc1".

    Versions are immutable and totally ordered, so they double as graph keys.
    """
    if isinstance(value, Version):
        return value
    try:
        return Version(str(value).strip())
    except InvalidVersion as exc:
        raise InvalidVersionError(f"Invalid version: {value!r}") from exc


def parse_optional_version(value: str | Version | None) -> Version | None:
    if value is None or value == "":
        return None
    return parse_version(value)


__all__ = [
    "AUTOMATIC_MIGRATION_SCHEMA_NAME",
    "DEFAULT_SCHEMA_NAME",
    "Database",
    "SchemaName",
    "Version",
    "parse_optional_version",
    "parse_version",
]
