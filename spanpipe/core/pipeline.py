"""Assembles the sanitizer, export driver and adapters behind one OpenTelemetry TracerProvider."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

from .batch_processor import BatchSpanProcessor, BatchSpanProcessorConfig
from .config import ConfigStore, PipelineConfig
from .logger import configure_logger
from .simple_processor import SimpleSpanProcessor
from .tracing.adapters.console import ConsoleSpanAdapter
from .tracing.adapters.http import HttpSpanAdapter, HttpSpanAdapterConfig
from .tracing.sanitizing_span import PipelineTracer
from .tracing.span_processor import ExportDriver, PipelineSpanProcessor

if TYPE_CHECKING:
    from .tracing.adapters.base import SpanExportAdapter

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "spanpipe-app"


def create_http_adapter(config: PipelineConfig) -> HttpSpanAdapter:
    """Build the collector adapter from the transport settings of ``config``."""
    return HttpSpanAdapter(
        HttpSpanAdapterConfig(
            endpoint=config.resolved_endpoint,
            headers=config.export_headers,
            compression=config.compression,
            timeout_seconds=config.export_timeout_seconds,
            retry=config.retry_config,
            debug=config.debug,
        )
    )


def create_driver(config: PipelineConfig, adapters: list["SpanExportAdapter"]) -> ExportDriver:
    if config.export_mode == "simple":
        return SimpleSpanProcessor(adapters, export_timeout_seconds=config.export_timeout_seconds)
    return BatchSpanProcessor(
        adapters,
        BatchSpanProcessorConfig(
            max_queue_size=config.max_queue_size,
            max_export_batch_size=config.batch_max_size,
            scheduled_delay_seconds=config.batch_max_delay_seconds,
            export_timeout_seconds=config.export_timeout_seconds,
        ),
    )


class SpanPipeline:
    """
    One span pipeline per process (or per test).

    Owns the config store, the TracerProvider, the sanitizing span processor
    and the export driver. Nothing is exported until ``start()`` is called.

    Example:
        pipeline = SpanPipeline.from_env(app_name="checkout")
        pipeline.start()
        tracer = pipeline.get_tracer(__name__)
        with tracer.start_as_current_span("charge") as span:
            span.set_attribute("http.request.body", {"amount": 10})
        pipeline.shutdown()
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        adapters: list["SpanExportAdapter"] | None = None,
        resource: Resource | None = None,
    ) -> None:
        """
        Args:
            config: Pipeline settings (defaults if omitted)
            adapters: Where spans go. Defaults to the HTTP collector adapter,
                plus console mirroring in debug + simple mode
            resource: Resource for every span; defaults to one carrying service.name
        """
        self._config_store = ConfigStore(config)
        config = self._config_store.current

        if adapters is None:
            adapters = [create_http_adapter(config)]
            if config.debug and config.export_mode == "simple":
                adapters.append(ConsoleSpanAdapter())
        self._adapters = adapters

        self._driver = create_driver(config, adapters)
        self._processor = PipelineSpanProcessor(self._driver, self._config_store)
        self._provider = TracerProvider(
            resource=resource or Resource.create({"service.name": config.app_name or DEFAULT_SERVICE_NAME})
        )
        self._provider.add_span_processor(self._processor)

        self._lock = threading.Lock()
        self._started = False
        self._shut_down = False

    @classmethod
    def from_env(cls, **overrides: Any) -> SpanPipeline:
        """Pipeline configured from SPANPIPE_* environment variables plus ``overrides``."""
        return cls(PipelineConfig.from_env(**overrides))

    @property
    def config(self) -> PipelineConfig:
        return self._config_store.current

    @property
    def config_store(self) -> ConfigStore:
        return self._config_store

    @property
    def tracer_provider(self) -> TracerProvider:
        return self._provider

    @property
    def driver(self) -> ExportDriver:
        return self._driver

    @property
    def adapters(self) -> list["SpanExportAdapter"]:
        return list(self._adapters)

    def start(self) -> SpanPipeline:
        """Configure logging and start the export driver. Safe to call twice."""
        with self._lock:
            if self._started:
                logger.debug("Already started, skipping...")
                return self
            config = self._config_store.current
            configure_logger(log_level="debug" if config.debug else "info")
            self._processor.start()
            self._started = True

        logger.debug(
            f"Span pipeline started in {config.export_mode} mode, exporting via "
            f"{', '.join(adapter.name for adapter in self._adapters)}"
        )
        return self

    def get_tracer(self, name: str, version: Optional[str] = None) -> PipelineTracer:
        return PipelineTracer(self._provider.get_tracer(name, version), self._config_store)

    def install_global(self) -> None:
        """Register this pipeline's provider as the global OpenTelemetry provider."""
        trace.set_tracer_provider(self._provider)

    def add_excluded_key(self, key: str) -> None:
        """Redact ``key`` (a dot-separated path) from spans finished from now on."""
        self._config_store.add_excluded_key(key)

    def remove_excluded_key(self, key: str) -> None:
        self._config_store.remove_excluded_key(key)

    def update_config(self, **changes: Any) -> PipelineConfig:
        """
        Swap in a new config. Sanitization settings apply to the next write;
        transport and driver settings are fixed once the pipeline is built.
        """
        return self._config_store.update(**changes)

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        timeout = self._config_store.current.export_timeout_seconds if timeout is None else timeout
        return self._provider.force_flush(int(timeout * 1000))

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Export what is still buffered (bounded by ``timeout``) and release adapters."""
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True

        if timeout is not None:
            # The processor's own stop below then finds the driver already stopped
            self._driver.stop(timeout)
        self._provider.shutdown()
        logger.debug("Span pipeline shut down")
