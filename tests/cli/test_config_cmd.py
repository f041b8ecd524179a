"""Tests for the config commands."""

import pytest


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "config.toml"
    path.write_text(
        "default_timeout = 45\n"
        "\n"
        "[profiles.local]\n"
        'host = "localhost"\n'
        'dbname = "orders"\n'
        'user = "app"\n'
        'password = "secret"\n'
        "\n"
        "[profiles.prod]\n"
        'dsn = "postgresql://ro@prod.example.com/orders?sslmode=require"\n'
        "\n"
        "[deltas]\n"
        'changeset = "orders"\n'
    )
    return path


@pytest.mark.unit
class TestConfigShow:
    def test_show_with_profile(self, cli_runner, config_file):
        result = cli_runner("--config", str(config_file), "--profile", "local", "config", "show")
        assert result.exit_code == 0, result.output
        assert "database: orders (profile: local)" in result.stdout
        assert "password: *** (profile: local)" in result.stdout
        assert "secret" not in result.stdout
        assert "timeout: 45.0s (config)" in result.stdout
        assert "changeset: orders" in result.stdout
        assert "Active Profile: local" in result.stdout

    def test_cli_override_attribution(self, cli_runner, config_file):
        result = cli_runner("--config", str(config_file), "--host", "other", "config", "show")
        assert "host: other (cli: --host)" in result.stdout
        assert "Active Profile: none" in result.stdout

    def test_unknown_profile(self, cli_runner, config_file):
        result = cli_runner("--config", str(config_file), "--profile", "nope", "config", "show")
        assert result.exit_code != 0
        assert "Unknown profile" in str(result.exception)


@pytest.mark.unit
class TestConfigProfiles:
    def test_lists_profiles(self, cli_runner, config_file):
        result = cli_runner("--config", str(config_file), "--profile", "prod", "config", "profiles")
        assert result.exit_code == 0, result.output
        assert "  local" in result.stdout
        assert "* prod (active)" in result.stdout
        assert "host: prod.example.com" in result.stdout
        assert "sslmode: require" in result.stdout

    def test_no_profiles(self, cli_runner, temp_dir):
        result = cli_runner("--config", str(temp_dir / "missing.toml"), "config", "profiles")
        assert result.exit_code == 0
        assert "No profiles configured." in result.stdout
