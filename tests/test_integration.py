"""Integration tests against a real PostgreSQL server.

Uses the profile named in integration_config; run with `pytest -m integration`.
"""

import uuid
from typing import Annotated, ClassVar

import pytest

from integration_config import TEST_CHANGESET, TEST_DATABASE, TEST_PROFILE
from procdata.core.client import PgClient
from procdata.core.config import load_config, resolve_config
from procdata.core.declarations import Param, StoredProcedure
from procdata.core.deltas import DeltaApplicator, delta_status
from procdata.core.exceptions import ExecutionError, NoMoreDataSetsError
from procdata.core.models import Direction
from procdata.core.repository import ProcedureRepository
from procedures import NameRow, PairRow

SETUP_SQL = """
CREATE OR REPLACE PROCEDURE procdata_it_two_sets(
    string_input text,
    INOUT names refcursor DEFAULT NULL,
    INOUT pairs refcursor DEFAULT NULL,
    INOUT guid_output uuid DEFAULT NULL
)
LANGUAGE plpgsql AS $$
BEGIN
    OPEN names FOR SELECT string_input UNION ALL SELECT 'second';
    OPEN pairs FOR SELECT 'a'::text, 'b'::text;
    guid_output := '6f1c2a52-3d5e-4b7a-9a61-0c1d2e3f4a5b';
END;
$$;
"""


class TwoSets(StoredProcedure):
    procedure_name: ClassVar[str] = "procdata_it_two_sets"
    result_rows: ClassVar[tuple[type, ...]] = (NameRow, PairRow)

    string_input: Annotated[str | None, Param()] = None
    names: Annotated[str | None, Param(Direction.INOUT, type_name="refcursor")] = None
    pairs: Annotated[str | None, Param(Direction.INOUT, type_name="refcursor")] = None
    guid_output: Annotated[uuid.UUID | None, Param(Direction.OUT)] = None


class Missing(StoredProcedure):
    procedure_name: ClassVar[str] = "procdata_it_missing"


@pytest.fixture
def resolved_config():
    return resolve_config(load_config(), profile_name=TEST_PROFILE, database=TEST_DATABASE)


@pytest.fixture
def repo(resolved_config):
    with ProcedureRepository(resolved_config) as r:
        r.client.execute_query(SETUP_SQL)
        yield r


@pytest.mark.integration
def test_reader_over_refcursors(repo):
    procedure = TwoSets(string_input="first")
    with repo.execute_reader(procedure) as reader:
        names = reader.read_list()
        pairs = reader.read_list()
        with pytest.raises(NoMoreDataSetsError):
            reader.read_list()
        reader.finalize_outputs()

    assert [n.name for n in names] == ["first", "second"]
    assert (pairs[0].first, pairs[0].second) == ("a", "b")
    assert procedure.guid_output == uuid.UUID("6f1c2a52-3d5e-4b7a-9a61-0c1d2e3f4a5b")


@pytest.mark.integration
def test_missing_procedure(repo):
    with pytest.raises(ExecutionError):
        repo.execute_non_query(Missing())


@pytest.mark.integration
def test_explicit_transaction_rollback(repo):
    repo.begin()
    repo.client.execute_query("CREATE TEMP TABLE procdata_it_tx (id int)")
    repo.rollback()
    result = repo.client.execute_query("SELECT to_regclass('pg_temp.procdata_it_tx')")
    assert result.rows == [(None,)]


@pytest.mark.integration
def test_apply_deltas(resolved_config, temp_dir):
    changeset = f"{TEST_CHANGESET}_{uuid.uuid4().hex[:8]}"
    (temp_dir / "1 create.sql").write_text("CREATE TEMP TABLE procdata_it_delta (id int);")
    (temp_dir / "2 insert.sql").write_text("INSERT INTO procdata_it_delta VALUES (1);")

    with PgClient(resolved_config) as client:
        results = DeltaApplicator(client, changeset, temp_dir).apply()
        assert results.is_success, results.summary()
        assert results.successfully_applied == [1, 2]

        again = DeltaApplicator(client, changeset, temp_dir).apply()
        assert again.already_applied == [1, 2]
        assert again.successfully_applied == []

        status = delta_status(client, changeset)
        assert [row[0] for row in status.rows] == [1, 2]
        client.execute_query(
            "DELETE FROM database_version_information WHERE changeset_name = %(c)s",
            {"c": changeset},
        )
