"""
Integration test fixtures and configuration.

This module provides pytest fixtures for integration testing with a real PostgreSQL database.
The tests drop and recreate the ``public`` schema, so never point them at a database
you care about.

Key fixtures:
- test_db_config: DbConfig for the test database
- test_db_engine: SQLAlchemy engine connected to test database
- test_db: Engine on a database whose public schema is empty before each test

Usage:
    @pytest.mark.integration
    def test_my_integration(test_db):
        # Use test_db to interact with test database
        pass

Running integration tests:
    pytest tests/integration -v -m integration
"""

import os
import time

import pytest
from pydantic import SecretStr
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from config.settings import DbConfig
from scripts.database.connection import get_postgres_engine
from scripts.database.schema_clearer import clear_statements


def wait_for_db(
    engine: Engine, max_retries: int = 5, retry_delay: float = 1.0
) -> bool:
    """
    Wait for database to be ready by attempting connections.

    Args:
        engine: SQLAlchemy engine to test
        max_retries: Maximum number of connection attempts
        retry_delay: Delay between retries in seconds

    Returns:
        bool: True if the database answered, False if it never did
    """
    for attempt in range(max_retries):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except OperationalError:
            if attempt < max_retries - 1:
                print(
                    f"⏳ Waiting for database (attempt {attempt + 1}/{max_retries})..."
                )
                time.sleep(retry_delay)
    return False


@pytest.fixture(scope="session")
def test_db_config() -> DbConfig:
    """
    Connection parameters for the test database.

    Environment Variables:
        POSTGRES_TEST_HOST: Test database host (default: localhost)
        POSTGRES_TEST_PORT: Test database port (default: 5434)
        POSTGRES_TEST_DB: Test database name (default: tobira_test)
        POSTGRES_TEST_USER: Test database user (default: postgres)
        POSTGRES_TEST_PASSWORD: Test database password (default: test_password)
    """
    return DbConfig(
        host=os.getenv("POSTGRES_TEST_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_TEST_PORT", "5434")),
        user=os.getenv("POSTGRES_TEST_USER", "postgres"),
        password=SecretStr(os.getenv("POSTGRES_TEST_PASSWORD", "test_password")),
        database=os.getenv("POSTGRES_TEST_DB", "tobira_test"),
    )


@pytest.fixture(scope="session")
def test_db_engine(test_db_config: DbConfig) -> Engine:
    """
    Create a SQLAlchemy engine for the test database.

    The engine is reused across all tests in the session. All integration
    tests are skipped if the database cannot be reached.
    """
    engine = get_postgres_engine(test_db_config)

    if not wait_for_db(engine):
        engine.dispose()
        pytest.skip("Test database not reachable; set POSTGRES_TEST_* to run integration tests")

    yield engine

    # Cleanup: close all connections
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_db_engine: Engine, test_db_config: DbConfig) -> Engine:
    """
    Provide a database with an empty public schema for each test.

    Args:
        test_db_engine: Session-scoped database engine
    """
    with test_db_engine.begin() as conn:
        for statement in clear_statements(test_db_config.user):
            conn.execute(text(statement))

    yield test_db_engine


@pytest.fixture
def populated_db(test_db: Engine) -> Engine:
    """Database with a few tables, rows and a custom type."""
    with test_db.begin() as conn:
        conn.execute(text("create type event_state as enum ('ready', 'waiting')"))
        conn.execute(
            text(
                "create table events (id bigint primary key, title text, state event_state)"
            )
        )
        conn.execute(text("create table series (id bigint primary key, title text)"))
        conn.execute(
            text(
                "insert into events values (1, 'Intro', 'ready'), "
                "(2, 'Lecture', 'ready'), (3, 'Outro', 'waiting')"
            )
        )
        conn.execute(text("insert into series values (1, 'Course')"))
    return test_db
