"""Batch span processor for efficient span export."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from .tracing.adapters.base import ExportResult, ExportResultCode

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

    from .tracing.adapters.base import SpanExportAdapter

logger = logging.getLogger(__name__)


@dataclass
class BatchSpanProcessorConfig:
    """Configuration for the batch span processor."""

    # Maximum queue size before spans are dropped
    max_queue_size: int = 2048
    # Maximum batch size per export; reaching it triggers an export
    max_export_batch_size: int = 512
    # Maximum age of the oldest buffered span before an export (in seconds)
    scheduled_delay_seconds: float = 2.0
    # Maximum time to wait for one export (in seconds)
    export_timeout_seconds: float = 30.0


class BatchState(Enum):
    ACCUMULATING = "accumulating"
    READY = "ready"
    SENDING = "sending"
    DELIVERED = "delivered"
    DROPPED = "dropped"


_TRANSITIONS = {
    BatchState.ACCUMULATING: {BatchState.READY},
    BatchState.READY: {BatchState.SENDING, BatchState.DROPPED},
    BatchState.SENDING: {BatchState.DELIVERED, BatchState.DROPPED},
    BatchState.DELIVERED: set(),
    BatchState.DROPPED: set(),
}


@dataclass
class ExportBatch:
    """A group of finished spans on its way to the adapters. Consumed once."""

    spans: list["ReadableSpan"]
    state: BatchState = BatchState.ACCUMULATING
    results: dict[str, ExportResult] = field(default_factory=dict)

    def advance(self, state: BatchState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid batch transition {self.state.value} -> {state.value}")
        self.state = state


class SpanBuffer:
    """
    Bounded FIFO of finished spans, in the order they finished.

    Remembers when each span was buffered so the processor can tell how long
    the oldest one has been waiting. Thread-safe.
    """

    def __init__(self, max_size: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._max_size = max_size
        self._clock = clock
        self._entries: deque[tuple[float, ReadableSpan]] = deque()
        self._lock = threading.Lock()
        self._dropped = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def append(self, span: "ReadableSpan") -> bool:
        """Buffer ``span``; returns False (and counts a drop) when full."""
        with self._lock:
            if len(self._entries) >= self._max_size:
                self._dropped += 1
                return False
            self._entries.append((self._clock(), span))
            return True

    def take(self, max_items: int) -> list["ReadableSpan"]:
        """Remove and return up to ``max_items`` of the oldest spans."""
        with self._lock:
            count = min(max_items, len(self._entries))
            return [self._entries.popleft()[1] for _ in range(count)]

    def clear(self) -> int:
        """Discard everything buffered; returns how many spans were discarded."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    @property
    def oldest_enqueued_at(self) -> Optional[float]:
        with self._lock:
            return self._entries[0][0] if self._entries else None

    @property
    def dropped_count(self) -> int:
        return self._dropped


class BatchSpanProcessor:
    """
    Batches spans and exports them from a background thread.

    - Queues spans in memory, dropping new ones when the queue is full
    - Exports when max_export_batch_size spans are waiting, or when the oldest
      waiting span has been buffered for scheduled_delay_seconds
    - Exports one batch at a time; failed batches are dropped, never re-queued
    - force_flush/stop drain the queue with a deadline; stop discards what is
      left when the deadline passes
    """

    def __init__(
        self,
        adapters: list["SpanExportAdapter"],
        config: BatchSpanProcessorConfig | None = None,
        on_batch_complete: Callable[[ExportBatch], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the batch processor.

        Args:
            adapters: List of adapters to export spans to
            config: Optional configuration (uses defaults if not provided)
            on_batch_complete: Called with every batch once it is delivered or dropped
            clock: Monotonic clock, injectable for tests
        """
        self._adapters = adapters
        self._config = config or BatchSpanProcessorConfig()
        self._on_batch_complete = on_batch_complete
        self._clock = clock
        self._buffer = SpanBuffer(self._config.max_queue_size, clock=clock)
        self._condition = threading.Condition()
        self._shutdown_event = threading.Event()
        self._export_thread: threading.Thread | None = None
        self._started = False
        self._stopped = False
        self._exported_spans = 0
        self._failed_spans = 0
        self._counter_lock = threading.Lock()

    def start(self) -> None:
        """Start the background export thread."""
        if self._started:
            return

        self._started = True
        self._stopped = False
        self._shutdown_event.clear()
        self._export_thread = threading.Thread(
            target=self._export_loop,
            daemon=True,
            name="spanpipe-batch-exporter",
        )
        self._export_thread.start()
        logger.debug("BatchSpanProcessor started")

    def stop(self, timeout: float | None = None) -> None:
        """
        Stop the processor and export remaining spans.

        Args:
            timeout: Maximum time to spend on the final export; spans still
                buffered after it are discarded
        """
        if self._stopped:
            return
        self._stopped = True

        timeout = self._config.export_timeout_seconds if timeout is None else timeout
        deadline = self._clock() + timeout

        self._shutdown_event.set()
        with self._condition:
            self._condition.notify_all()

        if self._export_thread is not None:
            self._export_thread.join(timeout=max(deadline - self._clock(), 0))
            self._export_thread = None

        # Final export of remaining spans
        if not self._drain(deadline):
            discarded = self._buffer.clear()
            if discarded:
                with self._counter_lock:
                    self._failed_spans += discarded
                logger.debug(f"Shutdown deadline reached, discarded {discarded} buffered spans")

        for adapter in self._adapters:
            try:
                adapter.shutdown()
            except Exception as e:
                logger.debug(f"Adapter {adapter.name} failed to shut down: {e}")

        self._started = False
        logger.debug(f"BatchSpanProcessor stopped. Dropped {self.dropped_span_count} spans total.")

    def add_span(self, span: "ReadableSpan") -> bool:
        """
        Add a span to the queue for export.

        Args:
            span: The span to add

        Returns:
            True if span was added, False if the queue is full or the
            processor is stopped and the span was dropped
        """
        if self._stopped:
            with self._counter_lock:
                self._failed_spans += 1
            return False

        with self._condition:
            if not self._buffer.append(span):
                logger.debug(
                    f"Span queue full ({self._config.max_queue_size}), dropping span. "
                    f"Total dropped: {self.dropped_span_count}"
                )
                return False

            size = len(self._buffer)
            # First span starts the delay clock; a full batch exports right away
            if size == 1 or size >= self._config.max_export_batch_size:
                self._condition.notify()
            return True

    def force_flush(self, timeout: float | None = None) -> bool:
        """Export everything buffered from the calling thread.

        Returns False when spans were still buffered at the deadline.
        """
        timeout = self._config.export_timeout_seconds if timeout is None else timeout
        return self._drain(self._clock() + timeout)

    def _seconds_until_due(self) -> Optional[float]:
        """0 when an export is due now, None when nothing is buffered."""
        if len(self._buffer) >= self._config.max_export_batch_size:
            return 0.0
        oldest = self._buffer.oldest_enqueued_at
        if oldest is None:
            return None
        return max(oldest + self._config.scheduled_delay_seconds - self._clock(), 0.0)

    def _export_loop(self) -> None:
        """Background thread that exports batches as they become due."""
        while not self._shutdown_event.is_set():
            with self._condition:
                wait = self._seconds_until_due()
                if wait is None or wait > 0:
                    self._condition.wait(timeout=wait)

            if self._shutdown_event.is_set():
                break

            if self._seconds_until_due() == 0:
                self._export_batch(self._config.export_timeout_seconds)

    def _drain(self, deadline: float) -> bool:
        while len(self._buffer) > 0:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            self._export_batch(min(remaining, self._config.export_timeout_seconds))
        return True

    def _export_batch(self, timeout: float) -> None:
        """Export a batch of spans from the queue."""
        spans = self._buffer.take(self._config.max_export_batch_size)
        if not spans:
            return

        batch = ExportBatch(spans)
        batch.advance(BatchState.READY)
        batch.advance(BatchState.SENDING)

        for adapter in self._adapters:
            try:
                result = adapter.export_spans(spans, timeout=timeout)
            except Exception as e:
                result = ExportResult.failed(e)
            batch.results[adapter.name] = result

            if result.code is ExportResultCode.SUCCESS:
                logger.debug(f"Exported {len(spans)} spans via {adapter.name}")
            else:
                logger.debug(f"Failed to export batch via {adapter.name}: {result.code.name} {result.error}")

        delivered = all(result.ok for result in batch.results.values())
        batch.advance(BatchState.DELIVERED if delivered else BatchState.DROPPED)
        with self._counter_lock:
            if delivered:
                self._exported_spans += len(spans)
            else:
                self._failed_spans += len(spans)

        if self._on_batch_complete is not None:
            try:
                self._on_batch_complete(batch)
            except Exception as e:
                logger.debug(f"on_batch_complete callback failed: {e}")

    @property
    def queue_size(self) -> int:
        """Get the current queue size."""
        return len(self._buffer)

    @property
    def dropped_span_count(self) -> int:
        """Spans dropped because the queue was full, the export failed, or shutdown discarded them."""
        with self._counter_lock:
            return self._buffer.dropped_count + self._failed_spans

    @property
    def exported_span_count(self) -> int:
        with self._counter_lock:
            return self._exported_spans
