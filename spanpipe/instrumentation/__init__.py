"""Instrumentation module for spanpipe."""

from .postgres import (
    PreparedStatementTracker,
    TracedConnection,
    TracedCursor,
    instrument_connection,
    obfuscate_sql,
)

__all__ = [
    "TracedConnection",
    "TracedCursor",
    "PreparedStatementTracker",
    "instrument_connection",
    "obfuscate_sql",
]
