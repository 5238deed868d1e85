"""Wire encoding of span batches (OTLP/protobuf)."""

from __future__ import annotations

from typing import Sequence

from opentelemetry.exporter.otlp.proto.common.trace_encoder import encode_spans
from opentelemetry.sdk.trace import ReadableSpan

PROTOBUF_CONTENT_TYPE = "application/x-protobuf"


def serialize_spans(spans: Sequence[ReadableSpan]) -> bytes:
    """Encode ``spans`` as an ExportTraceServiceRequest, preserving their order."""
    return encode_spans(spans).SerializePartialToString()
