"""In-memory span adapter for testing and development."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Optional, Sequence

from .base import ExportResult, SpanExportAdapter

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan
    from opentelemetry.trace import SpanKind


class InMemorySpanAdapter(SpanExportAdapter):
    """
    Stores spans in memory - useful for testing and development.

    Provides helper methods to query spans by name or kind, and keeps the
    batches as they were delivered so tests can check batching behaviour.
    """

    def __init__(self) -> None:
        self._spans: list[ReadableSpan] = []
        self._batches: list[list[ReadableSpan]] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"InMemorySpanAdapter(spans={len(self._spans)})"

    @property
    def name(self) -> str:
        return "in-memory"

    def get_all_spans(self) -> list["ReadableSpan"]:
        """Get all stored spans in export order."""
        with self._lock:
            return list(self._spans)

    def get_batches(self) -> list[list["ReadableSpan"]]:
        with self._lock:
            return [list(batch) for batch in self._batches]

    def get_spans_by_name(self, name: str) -> list["ReadableSpan"]:
        return [span for span in self.get_all_spans() if span.name == name]

    def get_spans_by_kind(self, kind: "SpanKind") -> list["ReadableSpan"]:
        """Get spans of a specific kind."""
        return [span for span in self.get_all_spans() if span.kind == kind]

    def clear(self) -> None:
        """Clear all stored spans."""
        with self._lock:
            self._spans.clear()
            self._batches.clear()

    def export_spans(self, spans: Sequence["ReadableSpan"], timeout: Optional[float] = None) -> ExportResult:
        """Export spans by storing them in memory."""
        with self._lock:
            self._spans.extend(spans)
            self._batches.append(list(spans))
        return ExportResult.success()
