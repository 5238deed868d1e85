"""Core module for spanpipe."""

from .batch_processor import BatchSpanProcessor, BatchSpanProcessorConfig, BatchState, ExportBatch, SpanBuffer
from .config import (
    ConfigStore,
    PipelineConfig,
    RetryConfig,
    SanitizationPolicy,
    find_project_root,
    load_config,
    load_config_file,
)
from .errors import (
    ExportTimeoutError,
    InvalidCapacityError,
    PermanentClientError,
    PermanentServerError,
    RetryableServerError,
    SpanPipeError,
    TransportError,
)
from .lru_cache import BoundedCache
from .pipeline import SpanPipeline
from .sanitizer import prepare, sanitize_attributes, truncate_sequence, truncate_string
from .simple_processor import SimpleSpanProcessor

__all__ = [
    # Main entry point
    "SpanPipeline",
    # Config
    "PipelineConfig",
    "SanitizationPolicy",
    "RetryConfig",
    "ConfigStore",
    "load_config",
    "load_config_file",
    "find_project_root",
    # Sanitization
    "prepare",
    "sanitize_attributes",
    "truncate_string",
    "truncate_sequence",
    # Cache
    "BoundedCache",
    # Export drivers
    "SimpleSpanProcessor",
    "BatchSpanProcessor",
    "BatchSpanProcessorConfig",
    "BatchState",
    "ExportBatch",
    "SpanBuffer",
    # Errors
    "SpanPipeError",
    "InvalidCapacityError",
    "TransportError",
    "RetryableServerError",
    "PermanentClientError",
    "PermanentServerError",
    "ExportTimeoutError",
]
