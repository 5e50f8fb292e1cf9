"""
Wipe the whole database and the search index.

Clearing is a two-phase operation over two different systems:

1. Inside one serializable transaction, the ``public`` schema is dropped
   (with everything in it) and recreated empty. Any failure in this phase
   rolls back and leaves the database untouched.
2. After the commit, the search index is cleared. This cannot be part of the
   database transaction. If it fails, the database stays wiped and a
   ``SearchIndexClearError`` reports the partial result.
"""

from __future__ import annotations

import logging
import socket
import sys
from typing import TextIO

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from config.settings import DbConfig
from scripts.database.confirmation import ConfirmationGuard
from scripts.database.errors import (
    ClearError,
    CommitError,
    SearchIndexClearError,
    SearchIndexError,
)
from scripts.database.search_index import SearchIndex

logger = logging.getLogger(__name__)

TableInventory = list[tuple[str, int]]

TABLE_NAMES_QUERY = """
    select table_name from information_schema.tables
    where table_schema = 'public' and table_type = 'BASE TABLE'
    order by table_name
"""


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def clear_statements(user: str) -> list[str]:
    """Statements that drop and recreate the ``public`` schema, in execution order."""
    return [
        "drop schema public cascade",
        "create schema public",
        f"grant all on schema public to {quote_identifier(user)}",
        "grant all on schema public to public",
        "comment on schema public is 'standard public schema'",
    ]


def read_table_inventory(connection: Connection) -> TableInventory:
    """
    List all tables of the ``public`` schema with their row counts.

    Only meant for display. Inside a serializable transaction this is a
    consistent snapshot.
    """
    names = [row[0] for row in connection.execute(text(TABLE_NAMES_QUERY))]
    inventory = []
    for name in names:
        count = connection.execute(
            text(f"select count(*) from {quote_identifier(name)}")
        ).scalar_one()
        inventory.append((name, count))
    return inventory


class SchemaClearer:
    """
    Removes all data, tables and types from the database and clears the search index.

    Args:
        db: Configuration of the database being cleared
        search_index: Search index to clear once the database is wiped
        guard: Confirmation gate, reads from stdin by default
        out: Stream for operator facing output, stdout by default
        production: Show the stronger production warning before asking
    """

    def __init__(
        self,
        db: DbConfig,
        search_index: SearchIndex,
        guard: ConfirmationGuard | None = None,
        out: TextIO | None = None,
        production: bool = True,
    ):
        self.db = db
        self.search_index = search_index
        self.guard = guard or ConfirmationGuard()
        self.out = out or sys.stdout
        self.production = production

    def clear(self, connection: Connection, skip_confirmation: bool) -> bool:
        """
        Clear the whole database by dropping and recreating the ``public`` schema.

        Unless ``skip_confirmation`` is set, the operator has to type ``yes``
        before anything is changed.

        Args:
            connection: An open connection without an active transaction
            skip_confirmation: Do not ask "are you sure?"

        Returns:
            bool: True if the database was cleared, False if the operator declined
                  (in which case nothing was changed)

        Raises:
            ClearError: A statement failed; the transaction was rolled back
            CommitError: The commit failed; the database state is unknown
            SearchIndexClearError: The database was cleared but the index was not
        """
        transaction = connection.begin()
        try:
            connection.execute(text("set transaction isolation level serializable"))

            logger.warning(
                "You are about to delete all existing data, tables, types and "
                "everything in the 'public' schema of the database!"
            )
            inventory = read_table_inventory(connection)
            self._print_overview(inventory)

            confirmed = skip_confirmation or self._ask_for_confirmation()
            if confirmed:
                for statement in clear_statements(self.db.user):
                    connection.execute(text(statement))
        except SQLAlchemyError as e:
            transaction.rollback()
            raise ClearError("failed to clear database") from e
        except BaseException:
            transaction.rollback()
            raise

        if not confirmed:
            transaction.rollback()
            self._print("Answer was not 'yes'. Aborting.")
            logger.info("Clearing the database was aborted by the operator")
            return False

        try:
            transaction.commit()
        except SQLAlchemyError as e:
            raise CommitError(
                "failed to commit clear transaction; check the database state manually"
            ) from e

        logger.info("Dropped and recreated schema 'public'")

        try:
            # We can't lock the index writer on tables we just destroyed; nothing
            # else may write to the index while this command runs.
            self.search_index.connect().clear()
        except SearchIndexError as e:
            raise SearchIndexClearError(
                "database was cleared, but failed to clear search index"
            ) from e

        logger.info("Cleared search index")
        return True

    def _print(self, line: str = "") -> None:
        print(line, file=self.out)

    def _print_overview(self, inventory: TableInventory) -> None:
        self._print()
        self._print(f"Hostname: {socket.gethostname()}")
        self._print(f"Database host: {self.db.host}")
        self._print(f"Database name: {self.db.database}")
        self._print()
        self._print("The database currently holds these tables:")
        for name, rows in inventory:
            self._print(f" - {name} ({rows} rows)")

    def _ask_for_confirmation(self) -> bool:
        if self.production:
            self._print()
            self._print("⚠️ ⚠️ ⚠️")
            self._print(
                "This is a production setup, indicating that you are likely "
                "executing this on a production system."
            )
            self._print("⚠️ ⚠️ ⚠️")
        self._print()
        self._print(
            "Are you sure you want to completely remove everything in this database "
            "and clear the search index? This completely drops the 'public' schema. "
            "Please double-check the server you are running this on!"
        )
        self._print("Type 'yes' to proceed to delete the data.")
        self.out.flush()
        return self.guard.confirm()
