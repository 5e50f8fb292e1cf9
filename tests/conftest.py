"""
Shared test fixtures and configuration for the database command test suite.

This file contains pytest fixtures that can be used across all test modules.
Fixtures defined here are automatically available to all test files.
"""

from __future__ import annotations

import io
from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from config.settings import Config, DbConfig, SearchConfig
from scripts.database.confirmation import ConfirmationGuard
from scripts.database.search_index import SearchIndex
from tests.fakes import ScriptedPrompt


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """
    Set up test environment variables.

    This fixture automatically runs before each test so that ``Config()``
    never depends on the developer's environment.
    """
    for name in (
        "POSTGRES_HOST",
        "POSTGRES_PORT",
        "POSTGRES_DB",
        "POSTGRES_USER",
        "MEILI_HOST",
        "MEILI_KEY",
        "MEILI_INDEX_PREFIX",
        "TOBIRA_ENV",
        "MIGRATIONS_DIR",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("POSTGRES_PASSWORD", "test_password")
    yield


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def db_config() -> DbConfig:
    """Configuration with characters in the credentials that need escaping."""
    return DbConfig(
        host="localhost",
        port=5432,
        user="ad min",
        password=SecretStr("p@ss/w0rd"),
        database="tobira",
    )


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(
        host="http://meili.test:7700/",
        key=SecretStr("meili_master_key"),
        index_prefix="tobira_",
    )


@pytest.fixture
def mock_search_index():
    """A search index whose ``connect()`` returns itself, like the real one."""
    index = MagicMock(spec=SearchIndex)
    index.connect.return_value = index
    return index


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def scripted_guard():
    """Factory for a confirmation guard answering with the given lines."""

    def make(*answers: str) -> ConfirmationGuard:
        return ConfirmationGuard(ScriptedPrompt(*answers))

    return make
