"""
Exception hierarchy for the database commands.

Every failure a command can run into is raised as a subclass of
``DbCommandError``. Lower level exceptions (SQLAlchemy, OS, HTTP) are kept as
the ``__cause__`` so the command line can print the full chain.
"""

from __future__ import annotations

import enum
from pathlib import Path


class DbCommandError(Exception):
    """Base class for all failures of a database command."""


class DbConnectionError(DbCommandError):
    """Could not obtain a connection from the pool."""


class ClearError(DbCommandError):
    """The clear transaction failed before commit; the database is unchanged."""


class CommitError(DbCommandError):
    """
    Committing the clear transaction failed.

    Whether the database was wiped is unknown at this point and has to be
    checked by the operator.
    """


class SearchIndexError(DbCommandError):
    """Talking to the search index failed."""


class SearchIndexClearError(DbCommandError):
    """
    The database was cleared and committed, but clearing the search index failed.

    The relational wipe is not rolled back. The index may still hold documents.
    """


class ScriptReadError(DbCommandError):
    def __init__(self, path: Path):
        super().__init__(f"failed to read script file '{path}'")
        self.path = path


class ScriptExecutionError(DbCommandError):
    def __init__(self, path: Path):
        super().__init__(f"failed to execute script '{path}'")
        self.path = path


class MigrationError(DbCommandError):
    """Migrations in the database and in code disagree, or applying one failed."""


class ExecFailureKind(enum.Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    OTHER = "other"


class ProcessExecError(DbCommandError):
    """An external program (psql, pg_dump, pg_restore) could not be started."""

    def __init__(self, program: str, kind: ExecFailureKind):
        if kind is ExecFailureKind.NOT_FOUND:
            message = f"`{program}` was not found in your `PATH`"
        elif kind is ExecFailureKind.PERMISSION_DENIED:
            message = f"you don't have sufficient permissions to execute `{program}`"
        else:
            message = f"an error occurred while trying to execute `{program}`"
        super().__init__(message)
        self.program = program
        self.kind = kind


def cause_chain(error: BaseException) -> list[str]:
    """Return the messages of ``error`` and all of its causes, outermost first."""
    messages = []
    current: BaseException | None = error
    while current is not None:
        messages.append(str(current) or type(current).__name__)
        current = current.__cause__
    return messages
