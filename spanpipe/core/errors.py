"""Exception types raised inside the pipeline."""

from __future__ import annotations

from typing import Any, Optional


class SpanPipeError(Exception):
    """Base class for spanpipe errors."""


class InvalidCapacityError(SpanPipeError, ValueError):
    """A bounded cache was created with a capacity below 1."""

    def __init__(self, capacity: Any) -> None:
        super().__init__(f"Cache capacity must be >= 1, got {capacity!r}")
        self.capacity = capacity


class TransportError(SpanPipeError):
    """A single export attempt did not succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class RetryableServerError(TransportError):
    """429/503/408/502/504 responses and redirect hops; retried with backoff."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Any = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status_code, response)
        self.retry_after = retry_after


class PermanentClientError(TransportError):
    """4xx responses other than 408 and 429. Never retried."""


class PermanentServerError(TransportError):
    """5xx responses other than 502, 503 and 504. Never retried."""


class ExportTimeoutError(TransportError):
    """The connection could not be opened or read within the attempt timeout."""
