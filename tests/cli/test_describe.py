"""Tests for the describe command."""

import pytest


@pytest.mark.unit
class TestDescribe:
    def test_parameters(self, cli_runner):
        result = cli_runner("--format", "csv", "describe", "procedures:ThreeSets")
        assert result.exit_code == 0, result.output
        assert "property,wire_name,direction,host_type,store_type" in result.stdout
        assert "StringInput,stringInput,IN," in result.stdout
        assert "GuidOutput,guidOutput,OUT," in result.stdout
        assert "Procedure: reporting.three_sets" in result.output

    def test_call_statement_shown(self, cli_runner):
        result = cli_runner("--format", "csv", "describe", "procedures:Counter")
        assert result.exit_code == 0, result.output
        assert 'CALL "bump_counter"(%s::text, %s::bigint, %s::numeric(10, 2))' in result.output
        assert "Total,total,INOUT," in result.stdout

    def test_structured_shows_type_name(self, cli_runner):
        result = cli_runner("--format", "csv", "describe", "procedures:LoadPrices")
        assert result.exit_code == 0, result.output
        assert "Prices,prices,IN,TableValue,catalog.price_row" in result.stdout

    def test_rows(self, cli_runner):
        result = cli_runner("--format", "json", "describe", "procedures:LoadPrices", "--rows")
        assert result.exit_code == 0, result.output
        assert '"row_type": "PriceRow"' in result.stdout
        assert '"constructor": "(none)"' in result.stdout

    def test_dotted_path(self, cli_runner):
        result = cli_runner("--format", "csv", "describe", "procedures.ThreeSets")
        assert result.exit_code == 0, result.output

    def test_unknown_module(self, cli_runner):
        result = cli_runner("describe", "no_such_module:Thing")
        assert result.exit_code != 0
        assert "Cannot import module" in str(result.exception)

    def test_unsupported_type_reported(self, cli_runner):
        result = cli_runner("describe", "procedures:Unsupported")
        assert result.exit_code != 0
        assert "dict is not a supported host value type" in str(result.exception)
