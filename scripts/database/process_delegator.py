"""
Hand control over to the PostgreSQL command line tools.

``console``, ``dump`` and ``restore`` replace the current process with
``psql``, ``pg_dump`` or ``pg_restore`` via ``os.execvp``. On success they
never return: exit code and output belong to the external tool from then on.
They must be called while no pooled connection is held; ``pg_restore`` in
particular drops the target database and fails if anything is connected to it.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import NoReturn, Sequence

from config.settings import DbConfig
from scripts.database.connection import connection_uri, masked_uri
from scripts.database.errors import ExecFailureKind, ProcessExecError

logger = logging.getLogger(__name__)

PSQL = "psql"
PG_DUMP = "pg_dump"
PG_RESTORE = "pg_restore"


def console(db: DbConfig) -> NoReturn:
    """Start an interactive ``psql`` session on the configured database."""
    fork_command(PSQL, [connection_uri(db)], [masked_uri(db)])


def dump(db: DbConfig, path: Path) -> NoReturn:
    """
    Dump the database into ``path`` using pg_dump's custom format.

    This can run while the application is using the database and still yields
    a consistent snapshot.
    """
    fork_command(
        PG_DUMP,
        ["--dbname", connection_uri(db), "--format", "custom", "--file", str(path)],
        ["--dbname", masked_uri(db), "--format", "custom", "--file", str(path)],
    )


def restore(db: DbConfig, path: Path, admin_database: str) -> NoReturn:
    """
    Restore the database from a dump created by ``dump``.

    The whole database is dropped before restoring, so data is lost if the
    restore fails. The connection URI always points at ``admin_database``
    (a database that exists on every server, usually ``postgres``), never at
    the database being restored, since pg_restore drops and recreates that one.
    """
    options = ["--clean", "--if-exists", "--create", str(path)]
    fork_command(
        PG_RESTORE,
        ["--dbname", connection_uri(db, database=admin_database), *options],
        ["--dbname", masked_uri(db, database=admin_database), *options],
    )


def fork_command(
    program: str, args: Sequence[str], display_args: Sequence[str] | None = None
) -> NoReturn:
    """
    Replace the current process with ``program``.

    Args:
        program: Executable name, looked up in ``PATH``
        args: Arguments passed to the program
        display_args: Arguments as they may appear in logs (password masked)

    Raises:
        ProcessExecError: If the program could not be started
    """
    shown = display_args if display_args is not None else args
    logger.debug(f"Executing: {program} {' '.join(shown)}")

    # Buffered output is lost once the process image is replaced
    sys.stdout.flush()
    sys.stderr.flush()
    for handler in logging.getLogger().handlers:
        handler.flush()

    try:
        os.execvp(program, [program, *args])
    except FileNotFoundError as e:
        raise ProcessExecError(program, ExecFailureKind.NOT_FOUND) from e
    except PermissionError as e:
        raise ProcessExecError(program, ExecFailureKind.PERMISSION_DENIED) from e
    except OSError as e:
        raise ProcessExecError(program, ExecFailureKind.OTHER) from e
