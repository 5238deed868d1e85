"""Tracing infrastructure for spanpipe."""

from .sanitizing_span import PipelineTracer, SanitizedSpan
from .serialization import PROTOBUF_CONTENT_TYPE, serialize_spans
from .span_processor import ExportDriver, PipelineSpanProcessor, sanitize_span

__all__ = [
    # Span creation
    "PipelineTracer",
    "SanitizedSpan",
    # OpenTelemetry integration
    "PipelineSpanProcessor",
    "ExportDriver",
    "sanitize_span",
    # Wire format
    "serialize_spans",
    "PROTOBUF_CONTENT_TYPE",
]
