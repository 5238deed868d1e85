"""Simple export driver: exports every finished span on the finishing thread."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .tracing.adapters.base import ExportResultCode

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

    from .tracing.adapters.base import SpanExportAdapter

logger = logging.getLogger(__name__)


class SimpleSpanProcessor:
    """
    Sends each span as a one-element batch as soon as it finishes.

    Trades throughput for latency: useful for debug mirroring and for
    short-lived processes. The calling thread blocks for the export.
    """

    def __init__(self, adapters: list["SpanExportAdapter"], export_timeout_seconds: float = 10.0) -> None:
        self._adapters = adapters
        self._export_timeout_seconds = export_timeout_seconds
        self._stopped = False
        self._exported_spans = 0
        self._dropped_spans = 0

    def start(self) -> None:
        self._stopped = False

    def add_span(self, span: "ReadableSpan") -> bool:
        """Export ``span`` right away. Returns False if any adapter failed."""
        if self._stopped:
            self._dropped_spans += 1
            return False

        delivered = True
        for adapter in self._adapters:
            try:
                result = adapter.export_spans([span], timeout=self._export_timeout_seconds)
            except Exception as e:
                logger.debug(f"Adapter {adapter.name} raised while exporting span '{span.name}': {e}")
                delivered = False
                continue

            if result.code is not ExportResultCode.SUCCESS:
                logger.debug(f"Dropped span '{span.name}' via {adapter.name}: {result.code.name} {result.error}")
                delivered = False

        if delivered:
            self._exported_spans += 1
        else:
            self._dropped_spans += 1
        return delivered

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        # Nothing is buffered
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._stopped:
            return
        self._stopped = True
        for adapter in self._adapters:
            try:
                adapter.shutdown()
            except Exception as e:
                logger.debug(f"Adapter {adapter.name} failed to shut down: {e}")

    @property
    def exported_span_count(self) -> int:
        return self._exported_spans

    @property
    def dropped_span_count(self) -> int:
        return self._dropped_spans
