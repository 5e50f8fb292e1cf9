"""
Connection helpers for the PostgreSQL store.

Two kinds of connection strings are built here: a libpq URI handed to the
external PostgreSQL tools (psql, pg_dump, pg_restore), and a SQLAlchemy URL
used for the connection pool. Both read the password from its ``SecretStr``
only at the moment the string is assembled. The results are sensitive and
must not be logged; use ``masked_uri`` for log output.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine

from config.settings import DbConfig

logger = logging.getLogger(__name__)


def percent_encode(value: str) -> str:
    """
    Percent-encode every byte of ``value`` that is not an ASCII letter or digit.

    This is stricter than ``urllib.parse.quote`` (which leaves ``_.-~`` alone),
    so user names, passwords and database names survive any URI parser.
    """
    encoded = []
    for char in value:
        if char.isascii() and char.isalnum():
            encoded.append(char)
        else:
            encoded.extend(f"%{byte:02X}" for byte in char.encode("utf-8"))
    return "".join(encoded)


def connection_uri(db: DbConfig, database: str | None = None) -> str:
    """
    Build a ``postgresql://`` URI for the given database configuration.

    Args:
        db: Database configuration
        database: Connect to this database instead of ``db.database``

    Returns:
        str: ``postgresql://<user>:<password>@<host>:<port>/<database>`` with
             user, password and database percent-encoded
    """
    return "postgresql://{}:{}@{}:{}/{}".format(
        percent_encode(db.user),
        percent_encode(db.password.get_secret_value()),
        db.host,
        db.port,
        percent_encode(database if database is not None else db.database),
    )


def masked_uri(db: DbConfig, database: str | None = None) -> str:
    """Same as ``connection_uri`` but with the password replaced, safe for logs."""
    return "postgresql://{}:***@{}:{}/{}".format(
        percent_encode(db.user),
        db.host,
        db.port,
        percent_encode(database if database is not None else db.database),
    )


def sqlalchemy_url(db: DbConfig) -> URL:
    """Build the SQLAlchemy URL for the psycopg2 driver."""
    return URL.create(
        drivername="postgresql+psycopg2",
        username=db.user,
        password=db.password.get_secret_value(),
        host=db.host,
        port=db.port,
        database=db.database,
    )


def get_postgres_engine(db: DbConfig) -> Engine:
    """
    Create a SQLAlchemy engine for PostgreSQL.

    Commands only ever need a single connection, so the pool is kept at one
    connection without overflow.

    Args:
        db: Database configuration

    Returns:
        Engine: SQLAlchemy engine instance
    """
    logger.debug(f"Creating connection pool for {masked_uri(db)}")
    return create_engine(
        sqlalchemy_url(db),
        pool_size=1,
        max_overflow=0,
        pool_pre_ping=True,
    )
