"""Sentry integration for error tracking and performance monitoring.

Sentry stays disabled unless PROCDATA_SENTRY_DSN is set.
"""

from __future__ import annotations

import os

import sentry_sdk

from procdata.__about__ import __version__

SENTRY_DSN_ENV = "PROCDATA_SENTRY_DSN"


def setup_sentry(environment: str | None = None) -> bool:
    """Initialize Sentry from the environment. Returns True when enabled."""
    dsn = os.environ.get(SENTRY_DSN_ENV)
    if not dsn:
        return False
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.03,
        environment=environment or os.environ.get("PROCDATA_ENV", "local"),
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
