"""Queries used by the integration tests to inspect the database state."""

from sqlalchemy import text
from sqlalchemy.engine import Engine


def public_tables(engine: Engine) -> list[str]:
    with engine.connect() as conn:
        return list(
            conn.execute(
                text(
                    "select table_name from information_schema.tables "
                    "where table_schema = 'public' order by table_name"
                )
            ).scalars()
        )


def public_types(engine: Engine) -> list[str]:
    with engine.connect() as conn:
        return list(
            conn.execute(
                text(
                    "select t.typname from pg_type t "
                    "join pg_namespace n on n.oid = t.typnamespace "
                    "where n.nspname = 'public' order by t.typname"
                )
            ).scalars()
        )


def row_count(engine: Engine, table: str) -> int:
    with engine.connect() as conn:
        return conn.execute(text(f'select count(*) from "{table}"')).scalar_one()
