"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings

from schemaflow.types import AUTOMATIC_MIGRATION_SCHEMA_NAME


class SchemaflowSettings(BaseSettings):
    db_path: Path = Path("schemaflow.db")
    migrations_package: str = ""  # e.g. "myapp.migrations"
    bootstrap_schema: str = AUTOMATIC_MIGRATION_SCHEMA_NAME
    continue_on_error: bool = False  # attempt every schema, report failures at the end
    log_level: str = "INFO"

    model_config = {"env_prefix": "SCHEMAFLOW_"}


settings = SchemaflowSettings()
