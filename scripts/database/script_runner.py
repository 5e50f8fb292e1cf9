"""
Run an operator supplied ``.sql`` script against the configured database.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from scripts.database.errors import ScriptExecutionError, ScriptReadError

logger = logging.getLogger(__name__)


def run_script(connection: Connection, script_path: Path) -> None:
    """
    Execute the whole file at ``script_path`` as a single batch.

    The script is trusted and may contain any number of statements. It is
    read completely before anything is sent to the database. No transaction
    is opened around it: the batch is sent in autocommit mode, so PostgreSQL
    runs a multi-statement script in its implicit transaction and the script
    may use ``begin``/``commit`` itself or statements like ``vacuum`` that
    refuse to run inside a transaction block.

    Args:
        connection: An open connection from the pool that has not executed
            anything yet
        script_path: Path to a file containing an SQL script

    Raises:
        ScriptReadError: If the file cannot be read
        ScriptExecutionError: If executing the script fails
    """
    try:
        script = Path(script_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ScriptReadError(script_path) from e

    logger.debug(f"Read {len(script)} characters from {script_path}")

    try:
        connection = connection.execution_options(isolation_level="AUTOCOMMIT")
        # no_parameters keeps psycopg2 from interpreting '%' in the script
        connection.exec_driver_sql(
            script, execution_options={"no_parameters": True}
        )
    except SQLAlchemyError as e:
        raise ScriptExecutionError(script_path) from e

    logger.info("Successfully ran SQL script")
