"""procdata - declarative PostgreSQL stored procedure invocation."""

from procdata.__about__ import __version__

__all__ = ["__version__"]
