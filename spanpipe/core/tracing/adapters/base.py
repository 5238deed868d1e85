"""Base interface and result type for span export adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan


class ExportResultCode(Enum):
    SUCCESS = 0
    FAILED = 1
    TIMEOUT = 2


@dataclass(frozen=True)
class ExportResult:
    """Terminal outcome of exporting one batch."""

    code: ExportResultCode
    error: Optional[Exception] = None

    @classmethod
    def success(cls) -> ExportResult:
        return cls(ExportResultCode.SUCCESS)

    @classmethod
    def failed(cls, error: Optional[Exception] = None) -> ExportResult:
        return cls(ExportResultCode.FAILED, error)

    @classmethod
    def timeout(cls, error: Optional[Exception] = None) -> ExportResult:
        return cls(ExportResultCode.TIMEOUT, error)

    @property
    def ok(self) -> bool:
        return self.code is ExportResultCode.SUCCESS


class SpanExportAdapter(ABC):
    """
    Destination for finished spans.

    Adapters are called from the export driver, either on the thread that
    finished the span (simple mode) or on the batch worker thread. They must
    report problems through the returned ExportResult instead of raising.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in log lines."""

    @abstractmethod
    def export_spans(self, spans: Sequence["ReadableSpan"], timeout: Optional[float] = None) -> ExportResult:
        """Export one batch, giving up after ``timeout`` seconds."""

    def shutdown(self) -> None:
        """Release resources held by the adapter."""
