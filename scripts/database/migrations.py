"""
Database migrations.

Migrations are plain SQL files in ``sql/migrations`` named ``NN-some-name.sql``.
Their ids have to be consecutive, starting at 1. Applied migrations are
recorded, together with their full script, in the ``__db_migrations`` table.
``migrate`` refuses to run if the recorded scripts and the ones shipped with
the code disagree; ``unsafe_overwrite_migrations`` is the escape hatch for
developers to force the table to match the code.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from scripts.database.errors import MigrationError

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "__db_migrations"

MIGRATION_FILE_PATTERN = re.compile(r"^(\d+)-([a-z0-9-]+)\.sql$")

CREATE_MIGRATIONS_TABLE = f"""
    create table if not exists {MIGRATIONS_TABLE} (
        id bigint primary key,
        name text not null,
        applied_on timestamp with time zone not null default now(),
        script text not null
    )
"""


@dataclass(frozen=True)
class Migration:
    id: int
    name: str
    script: str


def load_migrations(migrations_dir: str | Path) -> list[Migration]:
    """
    Load all migrations from ``migrations_dir``, ordered by id.

    Raises:
        MigrationError: If the directory can't be read, a file name is
                        malformed, or the ids are not 1, 2, 3, ...
    """
    directory = Path(migrations_dir)
    try:
        paths = sorted(p for p in directory.iterdir() if p.suffix == ".sql")
    except OSError as e:
        raise MigrationError(f"failed to read migrations from '{directory}'") from e

    migrations = []
    for path in paths:
        match = MIGRATION_FILE_PATTERN.match(path.name)
        if not match:
            raise MigrationError(
                f"invalid migration file name '{path.name}' (expected 'NN-name.sql')"
            )
        try:
            script = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise MigrationError(f"failed to read migration '{path}'") from e
        migrations.append(Migration(int(match.group(1)), match.group(2), script))

    migrations.sort(key=lambda m: m.id)
    expected_ids = list(range(1, len(migrations) + 1))
    if [m.id for m in migrations] != expected_ids:
        raise MigrationError(
            f"migration ids in '{directory}' are not consecutive starting at 1"
        )
    return migrations


def _applied_migrations(connection: Connection) -> dict[int, tuple[str, str]]:
    rows = connection.execute(
        text(f"select id, name, script from {MIGRATIONS_TABLE} order by id")
    )
    return {row.id: (row.name, row.script) for row in rows}


def _check_applied(applied: dict[int, tuple[str, str]], migrations: list[Migration]) -> None:
    by_id = {m.id: m for m in migrations}
    for id, (name, script) in applied.items():
        migration = by_id.get(id)
        if migration is None:
            raise MigrationError(
                f"migration {id} ('{name}') is applied in the database but unknown "
                "to this version; the database is newer than the code"
            )
        if migration.name != name or migration.script != script:
            raise MigrationError(
                f"migration {id} ('{name}') in the database differs from the one "
                "shipped with this version"
            )

    if sorted(applied) != list(range(1, len(applied) + 1)):
        raise MigrationError(
            f"applied migrations in {MIGRATIONS_TABLE} are not consecutive"
        )


def migrate(connection: Connection, migrations: list[Migration]) -> int:
    """
    Apply all migrations that are not yet recorded in the database.

    Everything happens in one serializable transaction with the migrations
    table locked, so concurrent migrators can't interleave.

    Returns:
        int: Number of newly applied migrations

    Raises:
        MigrationError: If the database disagrees with the code or a migration fails
    """
    try:
        with connection.begin():
            connection.execute(text("set transaction isolation level serializable"))
            connection.execute(text(CREATE_MIGRATIONS_TABLE))
            connection.execute(text(f"lock table {MIGRATIONS_TABLE} in exclusive mode"))

            applied = _applied_migrations(connection)
            _check_applied(applied, migrations)

            pending = migrations[len(applied):]
            for migration in pending:
                logger.info(f"Applying migration {migration.id} ('{migration.name}')")
                connection.exec_driver_sql(
                    migration.script, execution_options={"no_parameters": True}
                )
                connection.execute(
                    text(
                        f"insert into {MIGRATIONS_TABLE} (id, name, script) "
                        "values (:id, :name, :script)"
                    ),
                    {"id": migration.id, "name": migration.name, "script": migration.script},
                )
    except SQLAlchemyError as e:
        raise MigrationError("failed to apply migrations") from e

    if pending:
        logger.info(f"Applied {len(pending)} migration(s)")
    else:
        logger.info("Database is up to date, no migrations to apply")
    return len(pending)


def unsafe_overwrite_migrations(connection: Connection, migrations: list[Migration]) -> None:
    """
    Force the migrations table to match the migrations shipped with the code.

    Recorded migrations known to the code get their name and script replaced;
    unknown ones are deleted. No new rows are ever inserted. Intended for
    developers only.

    Raises:
        MigrationError: If the table can't be read or updated
    """
    by_id = {m.id: m for m in migrations}
    try:
        with connection.begin():
            rows = connection.execute(
                text(f"select id, name from {MIGRATIONS_TABLE} order by id")
            ).all()
            for row in rows:
                migration = by_id.get(row.id)
                if migration is None:
                    connection.execute(
                        text(f"delete from {MIGRATIONS_TABLE} where id = :id"),
                        {"id": row.id},
                    )
                    logger.warning(f"Deleted unknown migration {row.id} ('{row.name}')")
                else:
                    connection.execute(
                        text(
                            f"update {MIGRATIONS_TABLE} set name = :name, script = :script "
                            "where id = :id"
                        ),
                        {"id": row.id, "name": migration.name, "script": migration.script},
                    )
                    logger.info(f"Overwrote migration {row.id} ('{migration.name}')")
    except SQLAlchemyError as e:
        raise MigrationError("failed to overwrite migrations") from e
