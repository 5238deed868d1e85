"""Span handles whose attribute writes always pass through the sanitizer."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

from opentelemetry import context as context_api
from opentelemetry import trace
from opentelemetry.trace import Link, SpanKind, Status, StatusCode
from opentelemetry.util import types

from ..config import ConfigStore
from ..sanitizer import prepare, sanitize_attributes


Parent = Union[trace.Span, context_api.Context, None]


class SanitizedSpan(trace.Span):
    """
    Wraps an OpenTelemetry span and sanitizes every attribute on its way in.

    Implements the full ``opentelemetry.trace.Span`` interface, so it can be
    made current, used as a parent, or handed to code that expects a plain
    span. Mapping values are accepted and stored as redacted JSON text.
    """

    def __init__(self, span: trace.Span, config_store: ConfigStore) -> None:
        self._span = span
        self._config_store = config_store

    def __repr__(self) -> str:
        return f"SanitizedSpan({self._span!r})"

    @property
    def wrapped(self) -> trace.Span:
        return self._span

    # Attribute writes

    def set_attribute(self, key: str, value: Any) -> None:
        prepared = prepare(key, value, self._config_store.policy)
        if prepared is None:
            return
        self._span.set_attribute(key, prepared)

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        sanitized = sanitize_attributes(attributes, self._config_store.policy)
        if sanitized:
            self._span.set_attributes(sanitized)

    def add_event(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
        timestamp: Optional[int] = None,
    ) -> None:
        self._span.add_event(
            name,
            attributes=sanitize_attributes(attributes, self._config_store.policy),
            timestamp=timestamp,
        )

    def record_exception(
        self,
        exception: BaseException,
        attributes: types.Attributes = None,
        timestamp: Optional[int] = None,
        escaped: bool = False,
    ) -> None:
        self._span.record_exception(
            exception,
            attributes=sanitize_attributes(attributes, self._config_store.policy),
            timestamp=timestamp,
            escaped=escaped,
        )

    def add_link(self, context: trace.SpanContext, attributes: types.Attributes = None) -> None:
        self._span.add_link(context, sanitize_attributes(attributes, self._config_store.policy))

    # Lifecycle

    def finish(self, status: Optional[Union[Status, StatusCode]] = None, end_time: Optional[int] = None) -> None:
        """Set the final status (when given) and end the span."""
        if status is not None:
            self.set_status(status)
        self.end(end_time=end_time)

    def end(self, end_time: Optional[int] = None) -> None:
        self._span.end(end_time=end_time)

    def set_status(self, status: Union[Status, StatusCode], description: Optional[str] = None) -> None:
        self._span.set_status(status, description)

    def update_name(self, name: str) -> None:
        self._span.update_name(name)

    def get_span_context(self) -> trace.SpanContext:
        return self._span.get_span_context()

    def is_recording(self) -> bool:
        return self._span.is_recording()


class PipelineTracer:
    """
    Entry point for instrumentation: creates spans wrapped in SanitizedSpan.

    Attributes passed at creation are sanitized with the policy current at
    that moment; later writes use whatever policy is current then.
    """

    def __init__(self, tracer: trace.Tracer, config_store: ConfigStore) -> None:
        self._tracer = tracer
        self._config_store = config_store

    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Optional[Mapping[str, Any]] = None,
        parent: Parent = None,
        links: Optional[Sequence[Link]] = None,
        start_time: Optional[int] = None,
    ) -> SanitizedSpan:
        """Start a span that is not made current. End it with ``finish()`` or ``end()``."""
        span = self._tracer.start_span(
            name,
            context=_parent_context(parent),
            kind=kind,
            attributes=sanitize_attributes(attributes, self._config_store.policy),
            links=links,
            start_time=start_time,
        )
        return SanitizedSpan(span, self._config_store)

    @contextmanager
    def start_as_current_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Optional[Mapping[str, Any]] = None,
        parent: Parent = None,
        links: Optional[Sequence[Link]] = None,
        start_time: Optional[int] = None,
        record_exception: bool = True,
        set_status_on_exception: bool = True,
        end_on_exit: bool = True,
    ) -> Iterator[SanitizedSpan]:
        """Start a span, make it current for the block, and end it on exit."""
        span = self.start_span(name, kind=kind, attributes=attributes, parent=parent, links=links, start_time=start_time)
        with trace.use_span(
            span,
            end_on_exit=end_on_exit,
            record_exception=record_exception,
            set_status_on_exception=set_status_on_exception,
        ) as current:
            yield current


def _parent_context(parent: Parent) -> Optional[context_api.Context]:
    if parent is None or isinstance(parent, context_api.Context):
        return parent
    return trace.set_span_in_context(parent)
