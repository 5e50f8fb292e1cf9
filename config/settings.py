"""
Configuration settings for the Tobira database administration commands.

This module centralizes all configuration values and provides a single source of truth for all
configurable parameters. Values are read from the environment (optionally populated from a
``.env`` file in the project root) and validated once per invocation.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, SecretStr

from utils.logging import LOG_LEVELS

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


class DbConfig(BaseModel):
    """
    Connection parameters for the PostgreSQL store.

    The password is held as a ``SecretStr`` so it never shows up when the
    config is printed or logged. Only the connection URI builders read it.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    user: str
    password: SecretStr
    database: str


class SearchConfig(BaseModel):
    """Connection parameters for the Meilisearch instance backing the search index."""

    model_config = ConfigDict(frozen=True)

    host: str
    key: SecretStr
    index_prefix: str


class Config:
    """
    Central configuration class for the Tobira database commands.

    This class consolidates all configuration values including database
    connections, the search index, migrations, and logging parameters.
    """

    ENVIRONMENT: str = "production"

    # Database Configuration
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "tobira"
    DB_USER: str = "tobira"
    DB_PASSWORD: Optional[str] = None

    # Database that always exists on the server; used for restores
    DB_ADMIN_NAME: str = "postgres"

    # Search index (Meilisearch) Configuration
    MEILI_HOST: str = "http://127.0.0.1:7700"
    MEILI_KEY: Optional[str] = None
    MEILI_INDEX_PREFIX: str = "tobira_"
    REQUEST_TIMEOUT: int = 30
    TASK_POLL_INTERVAL: float = 0.2

    # Migrations
    MIGRATIONS_DIR: str = os.path.join(
        os.path.dirname(__file__), "..", "sql", "migrations"
    )

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/db_admin.log"
    LOG_MAX_BYTES: int = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT: int = 3

    def __init__(self):
        """Initialize configuration by loading from environment variables."""
        self._load_from_env()
        self._validate()

    def _load_from_env(self):
        """Load configuration values from environment variables."""
        environment = os.getenv("TOBIRA_ENV")
        if environment:
            self.ENVIRONMENT = environment.lower()

        # Database settings
        db_host = os.getenv("POSTGRES_HOST")
        if db_host:
            self.DB_HOST = db_host

        db_port = os.getenv("POSTGRES_PORT")
        if db_port:
            self.DB_PORT = int(db_port)

        db_name = os.getenv("POSTGRES_DB")
        if db_name:
            self.DB_NAME = db_name

        db_user = os.getenv("POSTGRES_USER")
        if db_user:
            self.DB_USER = db_user

        db_password = os.getenv("POSTGRES_PASSWORD")
        if db_password:
            self.DB_PASSWORD = db_password

        # Search settings
        meili_host = os.getenv("MEILI_HOST")
        if meili_host:
            self.MEILI_HOST = meili_host

        meili_key = os.getenv("MEILI_KEY")
        if meili_key:
            self.MEILI_KEY = meili_key

        meili_index_prefix = os.getenv("MEILI_INDEX_PREFIX")
        if meili_index_prefix is not None:
            self.MEILI_INDEX_PREFIX = meili_index_prefix

        request_timeout = os.getenv("REQUEST_TIMEOUT")
        if request_timeout:
            self.REQUEST_TIMEOUT = int(request_timeout)

        # Optional overrides
        migrations_dir = os.getenv("MIGRATIONS_DIR")
        if migrations_dir:
            self.MIGRATIONS_DIR = migrations_dir

        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            self.LOG_LEVEL = log_level.upper()

    def _validate(self):
        """
        Validate required configuration values.

        Raises:
            ValueError: If required configuration is missing.
        """
        if not self.DB_PASSWORD:
            raise ValueError(
                "POSTGRES_PASSWORD environment variable is required. "
                "Please set it in your .env file or environment."
            )

        if self.ENVIRONMENT not in ("production", "development"):
            raise ValueError(
                f"TOBIRA_ENV must be 'production' or 'development', got '{self.ENVIRONMENT}'"
            )

        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got '{self.LOG_LEVEL}'"
            )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def db_config(self) -> DbConfig:
        """
        Build the database connection parameters.

        Returns:
            DbConfig: Immutable connection parameters with the password wrapped as a secret
        """
        return DbConfig(
            host=self.DB_HOST,
            port=self.DB_PORT,
            user=self.DB_USER,
            password=SecretStr(self.DB_PASSWORD or ""),
            database=self.DB_NAME,
        )

    def search_config(self) -> SearchConfig:
        """Build the search index connection parameters."""
        return SearchConfig(
            host=self.MEILI_HOST,
            key=SecretStr(self.MEILI_KEY or ""),
            index_prefix=self.MEILI_INDEX_PREFIX,
        )


_config: Config | None = None


def get_config() -> Config:
    """
    Return the process-wide configuration, loading it on first use.

    Loading is deferred so that importing modules does not require a fully
    configured environment (e.g. for ``--help``).
    """
    global _config

    if _config is None:
        _config = Config()
    return _config
