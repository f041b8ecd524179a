"""Shared test fixtures for procdata."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from typer.testing import CliRunner

from procdata.cli.main import app
from procdata.core.registry import registry


@pytest.fixture
def runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_runner(runner):
    """Invoke the CLI app with the given arguments."""

    def invoke(*args: str, **kwargs):
        return runner.invoke(app, list(args), **kwargs)

    return invoke


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_registry():
    """Each test starts with an empty metadata cache."""
    registry.clear()
    yield
    registry.clear()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's Sentry DSN and PG* settings out of tests."""
    for var in (
        "PROCDATA_SENTRY_DSN",
        "PROCDATA_PROFILE",
        "PGHOST",
        "PGPORT",
        "PGDATABASE",
        "PGUSER",
        "PGPASSWORD",
    ):
        monkeypatch.delenv(var, raising=False)
