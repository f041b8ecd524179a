"""Connection settings for procdata.

Settings are folded together from layers, lowest precedence first:

- built-in defaults
- the config file (``default_timeout``)
- the selected named profile (--profile, PROCDATA_PROFILE or ``default_profile``)
- PG* environment variables
- --dsn
- individual CLI flags (--host, --port, ...)

Every resolved value remembers the layer that set it, which is what
``procdata config show`` prints.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from procdata.core.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "procdata" / "config.toml"

PROFILE_ENV_VAR = "PROCDATA_PROFILE"

DEFAULT_TIMEOUT = 30.0

_PG_ENV_VARS: dict[str, str] = {
    "PGHOST": "host",
    "PGPORT": "port",
    "PGDATABASE": "dbname",
    "PGUSER": "user",
    "PGPASSWORD": "password",  # pragma: allowlist secret
}

# CLI option name -> resolved field
_CLI_FIELDS: dict[str, str] = {
    "host": "host",
    "port": "port",
    "database": "dbname",
    "user": "user",
    "password": "password",  # pragma: allowlist secret
    "timeout": "default_timeout",
}

_DSN_QUERY_FIELDS: dict[str, type] = {
    "sslmode": str,
    "application_name": str,
    "connect_timeout": int,
}

_VALID_SSLMODES = frozenset(
    {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}
)


def parse_dsn(dsn: str) -> dict[str, Any]:
    """Split a postgresql:// or postgres:// URL into connection fields."""
    parsed = urlparse(dsn)
    if parsed.scheme not in ("postgresql", "postgres"):
        msg = f"Invalid DSN scheme: '{parsed.scheme}'. Expected 'postgresql' or 'postgres'"
        raise ConfigError(msg)

    fields = {
        "host": parsed.hostname,
        "port": parsed.port,
        "dbname": parsed.path.strip("/") or None,
        "user": parsed.username,
        "password": parsed.password,
    }
    query = parse_qs(parsed.query)
    for key, convert in _DSN_QUERY_FIELDS.items():
        if key in query:
            fields[key] = convert(query[key][0])
    return {key: value for key, value in fields.items() if value is not None}


class ConnectionSettings(BaseModel):
    """The libpq keywords procdata passes to psycopg.connect()."""

    host: str = "localhost"
    port: int = 5432
    dbname: str = "postgres"
    user: str | None = None
    password: str | None = None
    sslmode: str = "prefer"
    connect_timeout: int = 10
    application_name: str = "procdata"

    @field_validator("sslmode")
    @classmethod
    def validate_sslmode(cls, v: str) -> str:
        if v not in _VALID_SSLMODES:
            msg = f"Invalid sslmode: '{v}'. Must be one of: {', '.join(sorted(_VALID_SSLMODES))}"
            raise ValueError(msg)
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v


CONNECTION_FIELDS = frozenset(ConnectionSettings.model_fields)


class PgProfile(ConnectionSettings):
    """A named connection, stored under [profiles.<name>].

    A dsn fills in the fields the profile does not set itself.
    """

    dsn: str | None = None

    @model_validator(mode="before")
    @classmethod
    def parse_dsn_into_components(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("dsn"):
            data = {**parse_dsn(data["dsn"]), **data}
        return data


class DeltaSettings(BaseModel):
    """Defaults for `procdata deltas`, from the [deltas] table."""

    changeset: str | None = None
    path: Path | None = None


class AppConfig(BaseModel):
    default_timeout: float = DEFAULT_TIMEOUT
    default_profile: str | None = None
    profiles: dict[str, PgProfile] = {}
    deltas: DeltaSettings = DeltaSettings()


class ResolvedConfig(ConnectionSettings):
    """Final settings for one invocation, with the source of each value."""

    default_timeout: float = DEFAULT_TIMEOUT
    active_profile: str | None = None
    sources: dict[str, str] = {}

    def connect_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for psycopg.connect()."""
        return self.model_dump(include=set(CONNECTION_FIELDS))

    def for_database(self, dbname: str) -> ResolvedConfig:
        """Same server and credentials, different database."""
        return self.model_copy(update={"dbname": dbname})


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the TOML config file, or defaults when there is none."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except (ValidationError, ConfigError) as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigError(msg) from e


def select_profile(config: AppConfig, profile_name: str | None) -> str | None:
    """Name of the profile in effect, checked against the configured ones."""
    effective = profile_name or os.environ.get(PROFILE_ENV_VAR) or config.default_profile
    if effective and effective not in config.profiles:
        available = ", ".join(sorted(config.profiles)) if config.profiles else "none"
        msg = f"Unknown profile: '{effective}'. Available profiles: {available}"
        raise ConfigError(msg)
    return effective


def _environment_values() -> Iterator[tuple[str, str, Any]]:
    for env_var, field_name in _PG_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        if field_name == "port":
            try:
                value = int(value)
            except ValueError:
                msg = f"Invalid {env_var} value: '{value}'. Must be an integer"
                raise ConfigError(msg) from None
        yield env_var, field_name, value


def _layers(
    config: AppConfig,
    profile: str | None,
    dsn: str | None,
    cli_overrides: dict[str, Any],
) -> Iterator[tuple[str, dict[str, Any]]]:
    """(source label, values) pairs, lowest precedence first.

    The environment and CLI layers label each value with its variable or flag.
    """
    if config.default_timeout != DEFAULT_TIMEOUT:
        yield "config", {"default_timeout": config.default_timeout}
    if profile:
        settings = config.profiles[profile]
        yield f"profile: {profile}", {
            key: getattr(settings, key)
            for key in settings.model_fields_set & CONNECTION_FIELDS
        }
    for env_var, field_name, value in _environment_values():
        yield f"env: {env_var}", {field_name: value}
    if dsn:
        yield "dsn", parse_dsn(dsn)
    for cli_name, field_name in _CLI_FIELDS.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            yield f"cli: --{cli_name}", {field_name: value}


def resolve_config(
    config: AppConfig,
    profile_name: str | None = None,
    dsn: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConfig:
    """Fold every settings layer into a ResolvedConfig.

    CLI > DSN > env > profile > config file > built-in defaults.
    """
    active_profile = select_profile(config, profile_name)
    values: dict[str, Any] = {}
    sources = dict.fromkeys([*CONNECTION_FIELDS, "default_timeout"], "default")
    for source, layer in _layers(config, active_profile, dsn, cli_overrides):
        values.update(layer)
        sources.update(dict.fromkeys(layer, source))

    try:
        return ResolvedConfig(**values, active_profile=active_profile, sources=sources)
    except ValidationError as e:
        msg = f"Invalid connection settings: {e}"
        raise ConfigError(msg) from e
