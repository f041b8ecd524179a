"""Tests for delta discovery, application bookkeeping and summaries."""

from unittest.mock import MagicMock, patch

import pytest

from procdata.core.config import AppConfig, resolve_config
from procdata.core.deltas import (
    INCONSISTENT_STATE_REASON,
    DeltaApplicationResults,
    DeltaApplicator,
    delta_status,
    discover_deltas,
    ensure_database,
    parse_delta_number,
)
from procdata.core.exceptions import ExecutionError, InputError
from procdata.core.models import QueryResult


def result(rows=()):
    return QueryResult(columns=[], rows=list(rows), row_count=len(rows))


@pytest.fixture
def delta_dir(temp_dir):
    for name in (
        "1 create orders.sql",
        "2 add index.sql",
        "10 backfill.sql",
        "notes.sql",
        "README.md",
    ):
        (temp_dir / name).write_text(f"-- {name}\nSELECT 1;\n")
    return temp_dir


class FakeClient:
    """Answers the applicator's bookkeeping queries; records scripts run."""

    def __init__(self, applied=(), incomplete=False, fail_on=None):
        self.applied = list(applied)
        self.incomplete = incomplete
        self.fail_on = fail_on
        self.scripts = []
        self.config = resolve_config(AppConfig(), host="dbhost")

    def execute_query(self, sql, params=None, *, timeout=None):
        if "SELECT delta_number FROM" in sql:
            return result([(n,) for n in self.applied])
        if "apply_complete_time IS NULL" in sql:
            return result([(1,)] if self.incomplete else [])
        if sql.lstrip().startswith(("CREATE TABLE", "INSERT", "UPDATE")):
            return result()
        self.scripts.append((sql, timeout))
        if self.fail_on is not None and f"-- {self.fail_on}" in sql:
            raise ExecutionError("SQL error: relation does not exist")
        return result()


@pytest.mark.unit
class TestDiscovery:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("1 create orders.sql", 1),
            ("0042 something.sql", 42),
            ("7.sql", None),
            ("notes.sql", None),
            ("x1 bad.sql", None),
        ],
    )
    def test_parse_delta_number(self, filename, expected):
        assert parse_delta_number(filename) == expected

    def test_numeric_order(self, delta_dir):
        deltas = discover_deltas(delta_dir)
        assert list(deltas) == [1, 2, 10]
        assert deltas[10] == "10 backfill.sql"

    def test_missing_directory(self, temp_dir):
        with pytest.raises(InputError, match="Delta directory not found"):
            discover_deltas(temp_dir / "missing")

    def test_duplicate_numbers(self, delta_dir):
        (delta_dir / "2 other.sql").write_text("SELECT 2;")
        with pytest.raises(InputError, match="Delta 2 is defined twice"):
            discover_deltas(delta_dir)


@pytest.mark.unit
class TestDeltaApplicator:
    def test_first_run_applies_all(self, delta_dir):
        client = FakeClient()
        results = DeltaApplicator(client, "orders", delta_dir).apply()

        assert results.is_success
        assert results.successfully_applied == [1, 2, 10]
        assert results.already_applied == []
        assert [timeout for _, timeout in client.scripts] == [0, 0, 0]
        assert results.summary().endswith("Successfully applied 3 deltas on first run")
        assert "Connecting to dbhost" in results.status_messages

    def test_skips_already_applied(self, delta_dir):
        client = FakeClient(applied=[1, 2])
        results = DeltaApplicator(client, "orders", delta_dir).apply()

        assert results.already_applied == [1, 2]
        assert results.successfully_applied == [10]
        assert len(client.scripts) == 1
        assert "Successfully applied 1 deltas with 2 applied before this run" in results.summary()

    def test_nothing_to_apply(self, delta_dir):
        results = DeltaApplicator(FakeClient(applied=[1, 2, 10]), "orders", delta_dir).apply()
        assert results.is_success
        assert "No deltas to apply, there are 3 deltas already applied" in results.summary()

    def test_stops_at_first_failure(self, delta_dir):
        client = FakeClient(fail_on="2 add index.sql")
        results = DeltaApplicator(client, "orders", delta_dir).apply()

        assert not results.is_success
        assert results.successfully_applied == [1]
        assert results.failed_delta == 2
        assert results.skipped == [2, 10]
        assert results.failure_reason.startswith("Unhandled exception.\n")
        assert "relation does not exist" in results.failure_reason
        summary = results.summary()
        assert "Failed after applying 1 deltas, failed at 2." in summary

    def test_failure_before_any_delta(self, delta_dir):
        client = FakeClient(applied=[1], fail_on="2 add index.sql")
        results = DeltaApplicator(client, "orders", delta_dir).apply()
        assert (
            "Failed to apply any deltas, failed at 2.  "
            "There are 1 deltas already applied before this run."
        ) in results.summary().splitlines()

    def test_inconsistent_state_applies_nothing(self, delta_dir):
        client = FakeClient(applied=[1], incomplete=True)
        results = DeltaApplicator(client, "orders", delta_dir).apply()

        assert client.scripts == []
        assert results.failed_delta == 0
        assert results.skipped == [2, 10]
        assert results.failure_reason == INCONSISTENT_STATE_REASON

    def test_missing_directory_is_reported(self, temp_dir):
        client = FakeClient()
        results = DeltaApplicator(client, "orders", temp_dir / "missing").apply()

        assert client.scripts == []
        assert results.failed_delta == 0
        assert results.skipped == []
        assert "Delta directory not found" in results.failure_reason
        assert "Failed to apply any deltas, failed at 0." in results.summary()


@pytest.mark.unit
class TestResultsSummary:
    def test_status_messages_come_first(self):
        results = DeltaApplicationResults(
            status_messages=["Connecting to db"], successfully_applied=[1]
        )
        assert results.summary().splitlines() == [
            "Connecting to db",
            "Successfully applied 1 deltas on first run",
        ]


@pytest.mark.unit
class TestDatabaseHelpers:
    def test_delta_status_queries_version_table(self):
        client = MagicMock()
        delta_status(client, "orders")
        sql, params = client.execute_query.call_args.args
        assert "database_version_information" in sql
        assert params == {"changeset": "orders"}

    def test_ensure_database_existing(self):
        config = resolve_config(AppConfig(), database="orders")
        with patch("procdata.core.deltas.PgClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.execute_query.return_value = result([(1,)])
            assert ensure_database(config) is False
        assert client_cls.call_args.args[0].dbname == "postgres"
        assert client.execute_query.call_count == 1

    def test_ensure_database_creates(self):
        config = resolve_config(AppConfig(), database="orders")
        with patch("procdata.core.deltas.PgClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.execute_query.return_value = result()
            with patch("procdata.core.deltas.sql.SQL") as sql_cls:
                sql_cls.return_value.format.return_value.as_string.return_value = (
                    'CREATE DATABASE "orders"'
                )
                assert ensure_database(config) is True
        assert client.execute_query.call_args.args[0] == 'CREATE DATABASE "orders"'
