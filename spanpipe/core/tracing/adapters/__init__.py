"""Span export adapters for spanpipe."""

from .base import ExportResult, ExportResultCode, SpanExportAdapter
from .console import ConsoleSpanAdapter
from .http import HttpSpanAdapter, HttpSpanAdapterConfig, classify_response
from .memory import InMemorySpanAdapter

__all__ = [
    # Base
    "SpanExportAdapter",
    "ExportResult",
    "ExportResultCode",
    # Adapters
    "HttpSpanAdapter",
    "HttpSpanAdapterConfig",
    "InMemorySpanAdapter",
    "ConsoleSpanAdapter",
    # Helpers
    "classify_response",
]
