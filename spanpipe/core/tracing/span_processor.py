"""OpenTelemetry span processor that sanitizes finished spans and hands them to an export driver."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from opentelemetry.context import Context
from opentelemetry.sdk.trace import Event, ReadableSpan, Span, SpanProcessor

from ..config import ConfigStore, SanitizationPolicy
from ..sanitizer import sanitize_attributes

logger = logging.getLogger(__name__)


class ExportDriver(Protocol):
    """What the processor needs from SimpleSpanProcessor / BatchSpanProcessor."""

    def start(self) -> None: ...

    def add_span(self, span: ReadableSpan) -> bool: ...

    def force_flush(self, timeout: Optional[float] = None) -> bool: ...

    def stop(self, timeout: Optional[float] = None) -> None: ...


def sanitize_span(span: ReadableSpan, policy: SanitizationPolicy) -> ReadableSpan:
    """Return a copy of a finished span with span and event attributes re-sanitized."""
    events = [
        Event(event.name, sanitize_attributes(event.attributes, policy), event.timestamp)
        for event in span.events
    ]
    return ReadableSpan(
        name=span.name,
        context=span.context,
        parent=span.parent,
        resource=span.resource,
        attributes=sanitize_attributes(span.attributes, policy),
        events=events,
        links=span.links,
        kind=span.kind,
        status=span.status,
        start_time=span.start_time,
        end_time=span.end_time,
        instrumentation_scope=span.instrumentation_scope,
    )


class PipelineSpanProcessor(SpanProcessor):
    """
    Registered on the TracerProvider; receives every finished span.

    Attributes written straight to the SDK span (bypassing SanitizedSpan) are
    sanitized here with the policy current at finish time, then the span goes
    to the export driver. Nothing raised in here reaches instrumented code.
    """

    def __init__(self, driver: ExportDriver, config_store: ConfigStore) -> None:
        self._driver = driver
        self._config_store = config_store
        self._started = False
        self._shut_down = False

    @property
    def driver(self) -> ExportDriver:
        return self._driver

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._driver.start()

    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        # Sanitization happens on write and on end; nothing to do here
        pass

    def on_end(self, span: ReadableSpan) -> None:
        if self._shut_down:
            return
        try:
            sanitized = sanitize_span(span, self._config_store.policy)
            self._driver.add_span(sanitized)
        except Exception as e:
            logger.debug(f"Dropping span '{span.name}': {e}")

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        try:
            return self._driver.force_flush(timeout_millis / 1000)
        except Exception as e:
            logger.debug(f"force_flush failed: {e}")
            return False

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        try:
            self._driver.stop(self._config_store.current.export_timeout_seconds)
        except Exception as e:
            logger.debug(f"Export driver shutdown failed: {e}")
