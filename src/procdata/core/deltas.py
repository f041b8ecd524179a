"""Applying numbered SQL delta scripts to a database.

Delta files are named ``<number> <description>.sql`` and applied in
ascending numeric order. Each applied delta is recorded per changeset in
database_version_information; a row without a completion time marks a
delta that failed part-way, and no further deltas are applied to that
changeset until it is repaired by hand.
"""

from __future__ import annotations

from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING

import psycopg
import sentry_sdk
from psycopg import sql
from pydantic import BaseModel

from procdata.core.client import PgClient
from procdata.core.exceptions import InputError, ProcDataError
from procdata.core.logging import get_logger

if TYPE_CHECKING:
    from procdata.core.config import ResolvedConfig
    from procdata.core.models import QueryResult

VERSION_TABLE = "database_version_information"

MAINTENANCE_DATABASE = "postgres"

_CREATE_VERSION_TABLE = f"""
CREATE TABLE IF NOT EXISTS {VERSION_TABLE} (
    changeset_name varchar(200) NOT NULL,
    delta_number integer NOT NULL,
    filename text NOT NULL,
    apply_start_time timestamp NOT NULL,
    apply_complete_time timestamp,
    CONSTRAINT pk_{VERSION_TABLE} PRIMARY KEY (changeset_name, delta_number)
)
"""

_APPLIED_DELTAS = f"""
SELECT delta_number FROM {VERSION_TABLE}
WHERE changeset_name = %(changeset)s
ORDER BY delta_number ASC
"""

_INCOMPLETE_DELTAS = f"""
SELECT 1 FROM {VERSION_TABLE}
WHERE changeset_name = %(changeset)s AND apply_complete_time IS NULL
LIMIT 1
"""

_START_DELTA = f"""
INSERT INTO {VERSION_TABLE}
    (changeset_name, delta_number, filename, apply_start_time)
VALUES (%(changeset)s, %(delta)s, %(filename)s, timezone('utc', now()))
"""

_COMPLETE_DELTA = f"""
UPDATE {VERSION_TABLE}
SET apply_complete_time = timezone('utc', now())
WHERE changeset_name = %(changeset)s AND delta_number = %(delta)s
"""

_STATUS = f"""
SELECT delta_number, filename, apply_start_time, apply_complete_time
FROM {VERSION_TABLE}
WHERE changeset_name = %(changeset)s
ORDER BY delta_number ASC
"""

INCONSISTENT_STATE_REASON = (
    "Database is in an inconsistent state with partially applied deltas "
    "for this changeset"
)


def parse_delta_number(filename: str) -> int | None:
    """Number prefix of a delta filename, or None if it is not a delta."""
    prefix = filename.split(" ", 1)[0]
    try:
        return int(prefix)
    except ValueError:
        return None


def discover_deltas(delta_path: Path) -> dict[int, str]:
    """Map delta number -> filename for every delta in the directory, sorted."""
    if not delta_path.is_dir():
        msg = f"Delta directory not found: {delta_path}"
        raise InputError(msg)

    deltas: dict[int, str] = {}
    for path in delta_path.glob("*.sql"):
        number = parse_delta_number(path.name)
        if number is None:
            continue
        if number in deltas:
            msg = f"Delta {number} is defined twice: '{deltas[number]}' and '{path.name}'"
            raise InputError(msg)
        deltas[number] = path.name
    return dict(sorted(deltas.items()))


class DeltaApplicationResults(BaseModel):
    """Outcome of one run of the delta applicator."""

    already_applied: list[int] = []
    successfully_applied: list[int] = []
    status_messages: list[str] = []
    failed_delta: int | None = None
    skipped: list[int] = []
    failure_reason: str | None = None

    @property
    def is_success(self) -> bool:
        return self.failed_delta is None

    def summary(self) -> str:
        lines = list(self.status_messages)
        already = len(self.already_applied)
        applied = len(self.successfully_applied)
        previously = (
            f"  There are {already} deltas already applied before this run."
            if already
            else ""
        )

        if self.failed_delta is not None:
            if applied:
                headline = (
                    f"Failed after applying {applied} deltas, "
                    f"failed at {self.failed_delta}.{previously}"
                )
            else:
                headline = (
                    f"Failed to apply any deltas, failed at {self.failed_delta}.{previously}"
                )
            lines.extend([headline, "", self.failure_reason or ""])
        elif not applied:
            lines.append(
                f"No deltas to apply, there are {already} deltas already applied "
                "before this run."
            )
        elif already:
            lines.append(
                f"Successfully applied {applied} deltas with {already} applied "
                "before this run"
            )
        else:
            lines.append(f"Successfully applied {applied} deltas on first run")
        return "\n".join(lines)


def ensure_database(config: ResolvedConfig) -> bool:
    """Create the configured database if it is missing. Returns True if created."""
    log = get_logger(__name__)
    with PgClient(config.for_database(MAINTENANCE_DATABASE)) as client:
        result = client.execute_query(
            "SELECT 1 FROM pg_catalog.pg_database WHERE datname = %(name)s",
            {"name": config.dbname},
        )
        if result.rows:
            return False
        statement = sql.SQL("CREATE DATABASE {}").format(sql.Identifier(config.dbname))
        client.execute_query(statement.as_string(client.connection))
    log.info("database created", dbname=config.dbname)
    return True


def delta_status(client: PgClient, changeset: str) -> QueryResult:
    """Rows of the version table for one changeset."""
    client.execute_query(_CREATE_VERSION_TABLE)
    return client.execute_query(_STATUS, {"changeset": changeset})


class DeltaApplicator:
    """Brings one changeset of a database up to the latest delta."""

    def __init__(self, client: PgClient, changeset: str, delta_path: Path) -> None:
        self.client = client
        self.changeset = changeset
        self.delta_path = delta_path

    def apply(self) -> DeltaApplicationResults:
        """Apply pending deltas, stopping at the first failure.

        Failures never raise: they are reported in the returned results,
        together with the deltas that were skipped because of them.
        """
        log = get_logger(__name__, changeset=self.changeset)
        results = DeltaApplicationResults()
        pending: dict[int, str] = {}
        current: int | None = None

        with sentry_sdk.start_span(op="db.deltas", description=self.changeset):
            try:
                pending = discover_deltas(self.delta_path)
                results.status_messages.append(
                    f"Connecting to {self.client.config.host}"
                )
                self.client.execute_query(_CREATE_VERSION_TABLE)

                applied = self.client.execute_query(
                    _APPLIED_DELTAS, {"changeset": self.changeset}
                )
                for (number,) in applied.rows:
                    results.already_applied.append(number)
                    pending.pop(number, None)
                results.status_messages.append(
                    f"Determined {len(results.already_applied)} existing deltas"
                )

                incomplete = self.client.execute_query(
                    _INCOMPLETE_DELTAS, {"changeset": self.changeset}
                )
                if incomplete.rows:
                    log.error("partially applied deltas found")
                    results.failed_delta = 0
                    results.skipped = list(pending)
                    results.failure_reason = INCONSISTENT_STATE_REASON
                    return results

                for number, filename in pending.items():
                    current = number
                    self._apply_delta(number, filename, results)
                    results.successfully_applied.append(number)
            except (ProcDataError, psycopg.Error, OSError) as e:
                log.error("delta application failed", delta=current, error=str(e))
                results.failed_delta = current if current is not None else 0
                results.skipped = [
                    n for n in pending if n not in results.successfully_applied
                ]
                results.failure_reason = f"Unhandled exception.\n{e}"
        return results

    def _apply_delta(
        self, number: int, filename: str, results: DeltaApplicationResults
    ) -> None:
        log = get_logger(__name__, changeset=self.changeset)
        script = (self.delta_path / filename).read_text()
        params = {"changeset": self.changeset, "delta": number, "filename": filename}

        self.client.execute_query(_START_DELTA, params)
        results.status_messages.append(f"Applying delta {number}")
        log.info("applying delta", delta=number, filename=filename)
        self.client.execute_query(script, timeout=0)
        self.client.execute_query(_COMPLETE_DELTA, params)
