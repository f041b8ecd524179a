"""Standard exit codes for procdata.

Exit codes follow Unix conventions; the low range matches the other
PostgreSQL tooling we ship.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for procdata commands."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    INPUT_ERROR = 3
    OUTPUT_ERROR = 4
    NETWORK_ERROR = 5
    TIMEOUT = 6
    CONFIG_ERROR = 7
    PROTOCOL_ERROR = 8
    MAPPING_ERROR = 9
    DELTA_ERROR = 10
