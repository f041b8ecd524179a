"""Exception hierarchy for procdata.

All exceptions carry an exit_code for CLI return value mapping.
Exit codes are defined in exit_codes.py.
"""

from __future__ import annotations

from typing import Any

from procdata.core.exit_codes import ExitCode


def _type_name(value_type: Any) -> str:
    qualname = getattr(value_type, "__qualname__", None)
    if qualname is None:
        return repr(value_type)
    module = getattr(value_type, "__module__", "builtins")
    return qualname if module == "builtins" else f"{module}.{qualname}"


class ProcDataError(Exception):
    """Base exception for all procdata errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(ProcDataError):
    """A procedure or row declaration cannot be turned into a call."""

    exit_code: int = ExitCode.CONFIG_ERROR

    def __init__(self, message: str, value_type: Any = None) -> None:
        self.value_type = value_type
        super().__init__(message)

    @classmethod
    def unsupported_type(cls, value_type: Any) -> ConfigurationError:
        return cls(
            f"{_type_name(value_type)} is not a supported host value type",
            value_type=value_type,
        )


class ConfigError(ProcDataError):
    """Malformed config, missing profile."""

    exit_code: int = ExitCode.CONFIG_ERROR


class ProtocolViolation(ProcDataError):
    """The reader was driven out of order."""

    exit_code: int = ExitCode.PROTOCOL_ERROR


class NoMoreDataSetsError(ProtocolViolation):
    def __init__(self) -> None:
        super().__init__(
            "No more data sets available to process in the underlying reader"
        )


class OutputParametersAlreadyProcessedError(ProtocolViolation):
    def __init__(self) -> None:
        super().__init__(
            "Output parameters already processed for this stored procedure"
        )


class DataSetIndexError(ProtocolViolation):
    def __init__(self, index: int, count: int) -> None:
        self.index = index
        self.count = count
        super().__init__(
            f"Data set index {index} is out of range "
            f"(procedure declares {count} data sets)"
        )


class MissingMapping(ProcDataError):
    """A row type was requested but has no designated row constructor."""

    exit_code: int = ExitCode.MAPPING_ERROR

    def __init__(self, row_type: type) -> None:
        self.row_type = row_type
        super().__init__(
            f"Unable to parse row into {_type_name(row_type)}: "
            "no constructor is marked with @row_constructor"
        )


class ConnectivityError(ProcDataError):
    """Connection failures, unreachable host."""

    exit_code: int = ExitCode.NETWORK_ERROR


class TimeoutError(ConnectivityError):
    """Statement timeout, connection timeout."""

    exit_code: int = ExitCode.TIMEOUT


class ExecutionError(ProcDataError):
    """The database rejected a procedure call or SQL statement."""


class TransactionError(ProcDataError):
    """Transaction begin/commit/rollback used out of sequence."""


class InputError(ProcDataError):
    """File not found, invalid parameters."""

    exit_code: int = ExitCode.INPUT_ERROR
