"""
Unit tests for schema_clearer.py module.

The database is replaced by a FakeConnection that records every statement,
and the search index by a mock, so the tests focus on ordering, the
confirmation gate and error handling.
"""

from unittest.mock import patch

import pytest

from scripts.database.confirmation import ConfirmationGuard
from scripts.database.errors import (
    ClearError,
    CommitError,
    SearchIndexClearError,
    SearchIndexError,
)
from scripts.database.schema_clearer import (
    SchemaClearer,
    clear_statements,
    quote_identifier,
    read_table_inventory,
)
from tests.fakes import FakeConnection, table_responses

TABLES = {"events": 12, "realms": 3, "users": 0}

DESTRUCTIVE_STATEMENTS = [
    "drop schema public cascade",
    "create schema public",
    'grant all on schema public to "ad min"',
    "grant all on schema public to public",
    "comment on schema public is 'standard public schema'",
]


@pytest.fixture
def connection():
    return FakeConnection(responses=table_responses(TABLES))


@pytest.fixture
def make_clearer(db_config, mock_search_index, output, scripted_guard):
    def make(*answers, production=True):
        return SchemaClearer(
            db_config,
            mock_search_index,
            guard=scripted_guard(*answers),
            out=output,
            production=production,
        )

    return make


class TestHelpers:

    def test_quote_identifier(self):
        assert quote_identifier("users") == '"users"'
        assert quote_identifier('we"ird') == '"we""ird"'

    def test_clear_statements_order(self):
        assert clear_statements("ad min") == DESTRUCTIVE_STATEMENTS

    def test_read_table_inventory(self, connection):
        assert read_table_inventory(connection) == [
            ("events", 12),
            ("realms", 3),
            ("users", 0),
        ]

    def test_inventory_of_empty_database(self):
        assert read_table_inventory(FakeConnection()) == []


class TestClearConfirmed:
    """Clearing with --yes or after typing 'yes'."""

    def test_skip_confirmation(self, make_clearer, connection, mock_search_index):
        clearer = make_clearer()

        assert clearer.clear(connection, skip_confirmation=True) is True

        statements = connection.statements
        assert statements[0] == "set transaction isolation level serializable"
        assert statements[-5:] == DESTRUCTIVE_STATEMENTS
        assert clearer.guard.prompt.asked == 0

        transaction = connection.transactions[0]
        assert transaction.committed
        assert not transaction.rolled_back
        mock_search_index.connect.assert_called_once()
        mock_search_index.clear.assert_called_once()

    def test_inventory_read_before_destruction(self, make_clearer, connection):
        make_clearer().clear(connection, skip_confirmation=True)

        statements = connection.statements
        drop_index = statements.index("drop schema public cascade")
        count_indexes = [
            i for i, sql in enumerate(statements) if sql.startswith("select count(*)")
        ]
        assert len(count_indexes) == len(TABLES)
        assert max(count_indexes) < drop_index

    def test_operator_types_yes(self, make_clearer, connection, mock_search_index):
        clearer = make_clearer("yes")

        assert clearer.clear(connection, skip_confirmation=False) is True

        assert clearer.guard.prompt.asked == 1
        assert connection.statements[-5:] == DESTRUCTIVE_STATEMENTS
        assert connection.transactions[0].committed
        mock_search_index.clear.assert_called_once()

    def test_search_index_cleared_only_after_commit(self, db_config, output, connection):
        events = []

        class RecordingIndex:
            def connect(self):
                events.append(("connect", connection.transactions[0].committed))
                return self

            def clear(self):
                events.append(("clear", connection.transactions[0].committed))

        SchemaClearer(db_config, RecordingIndex(), out=output).clear(
            connection, skip_confirmation=True
        )

        assert events == [("connect", True), ("clear", True)]


class TestClearDeclined:
    """Anything but an exact 'yes' must leave the database untouched."""

    @pytest.mark.parametrize("answer", ["Yes", "y", "", "no", "YES", " yes"])
    def test_declined(self, make_clearer, connection, mock_search_index, output, answer):
        clearer = make_clearer(answer)

        assert clearer.clear(connection, skip_confirmation=False) is False

        for statement in DESTRUCTIVE_STATEMENTS:
            assert statement not in connection.statements
        transaction = connection.transactions[0]
        assert transaction.rolled_back
        assert not transaction.committed
        mock_search_index.connect.assert_not_called()
        mock_search_index.clear.assert_not_called()
        assert "Aborting" in output.getvalue()

    def test_interrupt_at_prompt_rolls_back(self, db_config, mock_search_index, output, connection):
        class InterruptedPrompt:
            def read_line(self):
                raise KeyboardInterrupt

        clearer = SchemaClearer(
            db_config, mock_search_index, guard=ConfirmationGuard(InterruptedPrompt()), out=output
        )

        with pytest.raises(KeyboardInterrupt):
            clearer.clear(connection, skip_confirmation=False)

        assert connection.transactions[0].rolled_back
        assert "drop schema public cascade" not in connection.statements


class TestOperatorOutput:

    def test_overview_lists_host_database_and_tables(self, make_clearer, connection, output):
        with patch(
            "scripts.database.schema_clearer.socket.gethostname",
            return_value="tobira-prod-01",
        ):
            make_clearer().clear(connection, skip_confirmation=True)

        text = output.getvalue()
        assert "Database host: localhost" in text
        assert "Database name: tobira" in text
        assert "Hostname: tobira-prod-01" in text
        assert " - events (12 rows)" in text
        assert " - realms (3 rows)" in text
        assert " - users (0 rows)" in text

    def test_password_never_shown(self, make_clearer, connection, output, caplog):
        make_clearer("no").clear(connection, skip_confirmation=False)

        assert "p@ss/w0rd" not in output.getvalue()
        assert "p@ss/w0rd" not in caplog.text

    def test_production_warning(self, make_clearer, connection, output):
        make_clearer("no", production=True).clear(connection, skip_confirmation=False)

        text = output.getvalue()
        assert "production system" in text
        assert "Type 'yes' to proceed" in text

    def test_no_production_warning_in_development(self, make_clearer, connection, output):
        make_clearer("no", production=False).clear(connection, skip_confirmation=False)

        text = output.getvalue()
        assert "production system" not in text
        assert "Type 'yes' to proceed" in text

    def test_no_question_with_skip_confirmation(self, make_clearer, connection, output):
        make_clearer().clear(connection, skip_confirmation=True)

        assert "Type 'yes'" not in output.getvalue()


class TestClearFailures:

    def test_failing_statement_rolls_back(self, make_clearer, mock_search_index):
        connection = FakeConnection(
            responses=table_responses(TABLES), fail_on="create schema public"
        )

        with pytest.raises(ClearError) as exc_info:
            make_clearer().clear(connection, skip_confirmation=True)

        assert not isinstance(exc_info.value, CommitError)
        transaction = connection.transactions[0]
        assert transaction.rolled_back
        assert not transaction.committed
        mock_search_index.clear.assert_not_called()

    def test_failing_inventory_rolls_back(self, make_clearer, mock_search_index):
        connection = FakeConnection(
            responses=table_responses(TABLES), fail_on="select count(*)"
        )
        clearer = make_clearer("yes")

        with pytest.raises(ClearError):
            clearer.clear(connection, skip_confirmation=False)

        assert connection.transactions[0].rolled_back
        assert clearer.guard.prompt.asked == 0
        assert "drop schema public cascade" not in connection.statements

    def test_commit_failure(self, make_clearer, mock_search_index):
        connection = FakeConnection(responses=table_responses(TABLES), fail_commit=True)

        with pytest.raises(CommitError) as exc_info:
            make_clearer().clear(connection, skip_confirmation=True)

        assert "failed to commit clear transaction" in str(exc_info.value)
        # A failed commit leaves the database state unknown, unlike ClearError
        assert not isinstance(exc_info.value, ClearError)
        mock_search_index.connect.assert_not_called()
        mock_search_index.clear.assert_not_called()

    def test_search_index_failure_is_partial_success(
        self, make_clearer, connection, mock_search_index
    ):
        mock_search_index.clear.side_effect = SearchIndexError("index 'tobira_event' is gone")

        with pytest.raises(SearchIndexClearError) as exc_info:
            make_clearer().clear(connection, skip_confirmation=True)

        # The database part is committed and stays that way
        assert connection.transactions[0].committed
        assert not connection.transactions[0].rolled_back
        assert "database was cleared" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, SearchIndexError)

    def test_search_index_unreachable(self, make_clearer, connection, mock_search_index):
        mock_search_index.connect.side_effect = SearchIndexError("connection refused")

        with pytest.raises(SearchIndexClearError):
            make_clearer().clear(connection, skip_confirmation=True)

        assert connection.transactions[0].committed
