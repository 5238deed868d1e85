"""Console span adapter that mirrors finished spans to a stream."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional, Sequence, TextIO

from .base import ExportResult, SpanExportAdapter

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan


class ConsoleSpanAdapter(SpanExportAdapter):
    """Writes each span as JSON. Used for debug mirroring in simple mode."""

    def __init__(self, out: TextIO | None = None) -> None:
        self._out = out or sys.stdout
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"ConsoleSpanAdapter(out={getattr(self._out, 'name', self._out)!r})"

    @property
    def name(self) -> str:
        return "console"

    def export_spans(self, spans: Sequence["ReadableSpan"], timeout: Optional[float] = None) -> ExportResult:
        try:
            with self._lock:
                for span in spans:
                    self._out.write(span.to_json() + "\n")
                self._out.flush()
        except (OSError, ValueError) as error:
            return ExportResult.failed(error)
        return ExportResult.success()
