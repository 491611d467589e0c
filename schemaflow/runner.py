"""Migration runner — executes steps against the datastore, one at a time.

Steps run in the order given. No reordering, no parallelism and no
transaction handling: the caller wraps the whole sequence in a unit of work.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from schemaflow.exceptions import StepExecutionError
from schemaflow.step import MigrationStep
from schemaflow.types import Database

_logger = logging.getLogger(__name__)

LogSink = Callable[[str], None]


def progress_line(step: MigrationStep) -> str:
    if step.source is None:
        return f"Installing schema '{step.schema_name}' with version {step.target}"
    return (
        f"Executing '{step.schema_name}' migration from version "
        f"{step.source} to version {step.target}"
    )


class MigrationRunner:
    """Runs migration steps on a single datastore handle."""

    def __init__(self, db: Database, log: LogSink | None = None) -> None:
        self.db = db
        self._log = log

    async def run(self, *steps: MigrationStep) -> list[MigrationStep]:
        """Execute steps in order. Returns the steps that ran."""
        return await self.run_all(steps)

    async def run_all(self, steps: Iterable[MigrationStep]) -> list[MigrationStep]:
        executed: list[MigrationStep] = []
        for step in steps:
            line = progress_line(step)
            _logger.info(line)
            if self._log is not None:
                self._log(line)
            try:
                await step.execute(self.db)
            except Exception as exc:
                _logger.error("Step %s failed: %s", step.describe(), exc)
                raise StepExecutionError(
                    step.schema_name, step.source, step.target
                ) from exc
            executed.append(step)
        return executed
