"""
Database commands and their dispatcher.

Each command is an immutable value parsed once from the command line. The
``CommandDispatcher`` runs exactly one of them:

- ``console``, ``dump`` and ``restore`` hand over to an external PostgreSQL
  tool before any connection pool exists. These tools connect on their own,
  and ``restore`` even requires that nothing is connected to the database.
- All other commands check out a single pooled connection and run on it.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import TextIO, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from config.settings import Config
from scripts.database import process_delegator
from scripts.database.confirmation import ConfirmationGuard
from scripts.database.connection import get_postgres_engine, masked_uri
from scripts.database.errors import DbConnectionError
from scripts.database.migrations import (
    load_migrations,
    migrate,
    unsafe_overwrite_migrations,
)
from scripts.database.schema_clearer import SchemaClearer
from scripts.database.script_runner import run_script
from scripts.database.search_index import SearchIndex

logger = logging.getLogger(__name__)


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True)


class ClearOptions(_Command):
    skip_confirmation: bool = False


class ClearCommand(_Command):
    """Removes all data and tables from the database. Also clears the search index."""

    options: ClearOptions = ClearOptions()


class ScriptCommand(_Command):
    """Runs an ``.sql`` script with the configured database connection."""

    path: Path


class MigrateCommand(_Command):
    """Runs the database migrations."""


class ConsoleCommand(_Command):
    """Opens a ``psql`` prompt on the database."""


class DumpCommand(_Command):
    """Dumps the database with ``pg_dump`` for a later ``restore``."""

    path: Path


class RestoreCommand(_Command):
    """Drops the database and restores it from a dump with ``pg_restore``."""

    path: Path


class ResetCommand(_Command):
    """Clear followed by migrate."""

    options: ClearOptions = ClearOptions()


class UnsafeOverwriteMigrationsCommand(_Command):
    """Makes the migrations table match the migrations of this version. Developers only."""


Command = Union[
    ClearCommand,
    ScriptCommand,
    MigrateCommand,
    ConsoleCommand,
    DumpCommand,
    RestoreCommand,
    ResetCommand,
    UnsafeOverwriteMigrationsCommand,
]


class CommandResult(enum.Enum):
    COMPLETED = "completed"
    # The operator did not confirm; nothing was changed
    DECLINED = "declined"


class CommandDispatcher:
    """
    Runs database commands against the configured database.

    Args:
        config: Loaded configuration
        guard: Confirmation gate for destructive commands
        out: Stream for operator facing output
        migrate_after_declined_clear: Let ``reset`` still migrate when the
            operator declined the clear. Off by default: a declined reset
            changes nothing at all.
    """

    def __init__(
        self,
        config: Config,
        guard: ConfirmationGuard | None = None,
        out: TextIO | None = None,
        migrate_after_declined_clear: bool = False,
    ):
        self.config = config
        self.guard = guard
        self.out = out
        self.migrate_after_declined_clear = migrate_after_declined_clear

    def run(self, command: Command) -> CommandResult:
        """
        Execute ``command``.

        Returns:
            CommandResult: Whether the command completed or was declined

        Raises:
            DbCommandError: If the command failed
        """
        db = self.config.db_config()

        # These replace the current process and bring their own connection
        if isinstance(command, ConsoleCommand):
            process_delegator.console(db)
        if isinstance(command, DumpCommand):
            process_delegator.dump(db, command.path)
        if isinstance(command, RestoreCommand):
            process_delegator.restore(db, command.path, self.config.DB_ADMIN_NAME)

        engine = get_postgres_engine(db)
        try:
            try:
                connection = engine.connect()
            except SQLAlchemyError as e:
                raise DbConnectionError(
                    f"failed to connect to database {masked_uri(db)}"
                ) from e

            with connection:
                return self._dispatch(command, connection)
        finally:
            engine.dispose()

    def _dispatch(self, command: Command, connection: Connection) -> CommandResult:
        if isinstance(command, ClearCommand):
            cleared = self._clearer().clear(connection, command.options.skip_confirmation)
            return CommandResult.COMPLETED if cleared else CommandResult.DECLINED

        if isinstance(command, MigrateCommand):
            migrate(connection, load_migrations(self.config.MIGRATIONS_DIR))
            return CommandResult.COMPLETED

        if isinstance(command, ResetCommand):
            # Loaded up front so a broken migration set fails before anything is dropped
            migrations = load_migrations(self.config.MIGRATIONS_DIR)
            cleared = self._clearer().clear(connection, command.options.skip_confirmation)
            if not cleared and not self.migrate_after_declined_clear:
                logger.info("Database was not cleared, skipping migrations")
                return CommandResult.DECLINED
            migrate(connection, migrations)
            return CommandResult.COMPLETED if cleared else CommandResult.DECLINED

        if isinstance(command, ScriptCommand):
            run_script(connection, command.path)
            return CommandResult.COMPLETED

        if isinstance(command, UnsafeOverwriteMigrationsCommand):
            unsafe_overwrite_migrations(
                connection, load_migrations(self.config.MIGRATIONS_DIR)
            )
            return CommandResult.COMPLETED

        raise TypeError(f"unexpected command {command!r}")

    def _clearer(self) -> SchemaClearer:
        search_index = SearchIndex(
            self.config.search_config(),
            request_timeout=self.config.REQUEST_TIMEOUT,
            poll_interval=self.config.TASK_POLL_INTERVAL,
        )
        return SchemaClearer(
            self.config.db_config(),
            search_index,
            guard=self.guard,
            out=self.out,
            production=self.config.is_production,
        )
