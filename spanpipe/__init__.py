"""spanpipe: sanitizing, batching and resilient export of OpenTelemetry spans."""

from .core import (
    BatchSpanProcessorConfig,
    BoundedCache,
    ConfigStore,
    PipelineConfig,
    RetryConfig,
    SanitizationPolicy,
    SpanPipeline,
    find_project_root,
    load_config,
)
from .core.logger import LogLevel, get_log_level, set_log_level
from .core.tracing import PipelineTracer, SanitizedSpan
from .core.tracing.adapters import (
    ConsoleSpanAdapter,
    ExportResult,
    ExportResultCode,
    HttpSpanAdapter,
    HttpSpanAdapterConfig,
    InMemorySpanAdapter,
    SpanExportAdapter,
)
from .instrumentation import TracedConnection, instrument_connection

__version__ = "0.1.0"

__all__ = [
    # Core
    "SpanPipeline",
    "PipelineTracer",
    "SanitizedSpan",
    "BoundedCache",
    "BatchSpanProcessorConfig",
    # Config
    "PipelineConfig",
    "SanitizationPolicy",
    "RetryConfig",
    "ConfigStore",
    "load_config",
    "find_project_root",
    # Logger
    "LogLevel",
    "set_log_level",
    "get_log_level",
    # Instrumentations
    "TracedConnection",
    "instrument_connection",
    # Adapters
    "SpanExportAdapter",
    "ExportResult",
    "ExportResultCode",
    "HttpSpanAdapter",
    "HttpSpanAdapterConfig",
    "InMemorySpanAdapter",
    "ConsoleSpanAdapter",
]
