"""HTTP span adapter: sends serialized span batches to a collector with retries.

Each batch is POSTed to the collector endpoint. Responses are classified as:

- 2xx: delivered.
- 429, 503: retried, honouring Retry-After when the server sends one.
- 408, 502, 504: retried with exponential backoff.
- 3xx: the Location target replaces the endpoint for the rest of the call;
  the hop counts as a retry and is taken without delay.
- any other 4xx/5xx: permanent failure.
- open/read timeouts and connection errors: retried; exhausted timeouts end
  as TIMEOUT.

Retries stop when ``retry.max_retries`` is used up or when the next delay
would run past the call's timeout.
"""

from __future__ import annotations

import gzip
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Mapping, Optional, Sequence
from urllib.parse import urljoin

import requests
from opentelemetry.context import _SUPPRESS_INSTRUMENTATION_KEY, attach, detach, set_value

from ...config import RetryConfig
from ...errors import (
    ExportTimeoutError,
    PermanentClientError,
    PermanentServerError,
    RetryableServerError,
    TransportError,
)
from ...retry import calculate_backoff_delay, parse_retry_after
from ..serialization import PROTOBUF_CONTENT_TYPE, serialize_spans
from .base import ExportResult, SpanExportAdapter

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

logger = logging.getLogger(__name__)

RETRY_AFTER_STATUSES = frozenset({429, 503})
RETRYABLE_STATUSES = frozenset({408, 502, 504})

Serializer = Callable[[Sequence["ReadableSpan"]], bytes]


@dataclass
class HttpSpanAdapterConfig:
    """Configuration for the HTTP span adapter."""

    endpoint: str
    headers: Mapping[str, str] = field(default_factory=dict)
    # "gzip" or None
    compression: Optional[str] = None
    # Default budget for a whole send() call, retries included
    timeout_seconds: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    debug: bool = False


class HttpSpanAdapter(SpanExportAdapter):
    """
    Exports span batches to a collector over HTTP.

    Only one send runs at a time; concurrent callers wait on ``_send_lock``
    so batches reach the collector in the order they were handed over.
    """

    def __init__(
        self,
        config: HttpSpanAdapterConfig,
        session: requests.Session | None = None,
        serializer: Serializer = serialize_spans,
        content_type: str = PROTOBUF_CONTENT_TYPE,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the HTTP adapter.

        Args:
            config: Endpoint, headers, compression, timeout and retry settings
            session: requests session to send with (one is created if omitted)
            serializer: Turns a batch into the request body
            content_type: Content-Type announced for the serialized body
            sleep: Called with each backoff delay; tests pass a no-op
            clock: Monotonic clock used for the timeout budget
        """
        self._config = config
        self._session = session or requests.Session()
        self._serializer = serializer
        self._content_type = content_type
        self._sleep = sleep
        self._clock = clock
        self._send_lock = threading.Lock()
        self._shutdown = False

        logger.debug(f"HttpSpanAdapter initialized for {config.endpoint}")

    def __repr__(self) -> str:
        return f"HttpSpanAdapter(endpoint={self._config.endpoint}, compression={self._config.compression})"

    @property
    def name(self) -> str:
        return "http"

    @property
    def config(self) -> HttpSpanAdapterConfig:
        return self._config

    def export_spans(self, spans: Sequence["ReadableSpan"], timeout: Optional[float] = None) -> ExportResult:
        """Serialize ``spans`` and send them as one request body."""
        if self._shutdown:
            return ExportResult.failed(TransportError("Adapter is shut down"))
        if not spans:
            return ExportResult.success()

        try:
            payload = self._serializer(spans)
        except Exception as error:
            logger.debug(f"Failed to serialize {len(spans)} spans: {error}")
            return ExportResult.failed(error)

        return self.send(payload, timeout=timeout)

    def send(self, payload: bytes, timeout: Optional[float] = None) -> ExportResult:
        """POST ``payload`` to the collector, retrying per the retry policy.

        Each attempt gets a timeout equal to what is left of ``timeout``, so
        nothing from a slow attempt carries over to later calls.
        """
        timeout = self._config.timeout_seconds if timeout is None else timeout
        body, headers = self._build_request(payload)

        # Our own HTTP calls must not be traced by instrumented HTTP clients
        token = attach(set_value(_SUPPRESS_INSTRUMENTATION_KEY, True))
        try:
            with self._send_lock:
                return self._send_with_retries(body, headers, timeout)
        finally:
            detach(token)

    def _build_request(self, payload: bytes) -> tuple[bytes, dict[str, str]]:
        headers = {"Content-Type": self._content_type}
        body = payload
        if self._config.compression == "gzip":
            headers["Content-Encoding"] = "gzip"
            body = gzip.compress(payload)
        headers.update(self._config.headers)
        return body, headers

    def _send_with_retries(self, body: bytes, headers: dict[str, str], timeout: float) -> ExportResult:
        start = self._clock()
        url = self._config.endpoint
        attempt = 0

        while True:
            remaining = timeout - (self._clock() - start)
            if remaining <= 0:
                return ExportResult.timeout(ExportTimeoutError(f"Export timed out after {timeout}s"))

            attempt += 1
            try:
                response = self._session.post(
                    url,
                    data=body,
                    headers=headers,
                    timeout=remaining,
                    allow_redirects=False,
                )
            except requests.Timeout as e:
                error: TransportError = ExportTimeoutError(f"Timeout while sending spans to {url}: {e}")
                if self._config.debug:
                    logger.warning(f"Timeout while sending spans to {url} (attempt {attempt})")
            except requests.RequestException as e:
                error = TransportError(f"Failed to send spans to {url}: {e}")
            else:
                if 200 <= response.status_code < 300:
                    logger.debug(f"Spans delivered to {url} (attempt {attempt})")
                    return ExportResult.success()

                if self._config.debug and response.status_code >= 400:
                    self._log_failed_response(response)

                error = classify_response(response)
                if not isinstance(error, RetryableServerError):
                    return ExportResult.failed(error)
                if 300 <= response.status_code < 400:
                    url = urljoin(url, response.headers["Location"])
                    logger.debug(f"Following redirect to {url}")

            if attempt > self._config.retry.max_retries:
                return _terminal_result(error)

            delay = self._retry_delay(attempt, error)
            remaining = timeout - (self._clock() - start)
            if delay >= remaining:
                logger.debug(f"Retry delay {delay:.2f}s exceeds remaining budget {remaining:.2f}s, giving up")
                return _terminal_result(error)
            if delay > 0:
                self._sleep(delay)

    def _retry_delay(self, attempt: int, error: TransportError) -> float:
        if isinstance(error, RetryableServerError) and error.retry_after is not None:
            return error.retry_after
        return calculate_backoff_delay(attempt, self._config.retry)

    def _log_failed_response(self, response: requests.Response) -> None:
        try:
            logger.warning(
                f"Error while sending spans: {response.status_code} {response.reason}\n"
                f"Headers: {dict(response.headers)!r}\n"
                f"{response.text}"
            )
        except Exception as e:
            logger.debug(f"Could not log failed response: {e}")

    def shutdown(self) -> None:
        """Close the HTTP session; later exports fail immediately."""
        self._shutdown = True
        with self._send_lock:
            self._session.close()


def classify_response(response: requests.Response) -> TransportError:
    """Map a non-2xx response to the matching transport error."""
    status = response.status_code

    if status in RETRY_AFTER_STATUSES:
        return RetryableServerError(
            f"Collector is throttling or unavailable ({status})",
            status_code=status,
            response=response,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status in RETRYABLE_STATUSES:
        return RetryableServerError(f"Collector request failed with {status}", status_code=status, response=response)
    if 300 <= status < 400:
        if not response.headers.get("Location"):
            return TransportError(f"Redirect ({status}) without a Location header", status_code=status, response=response)
        return RetryableServerError(f"Redirected ({status})", status_code=status, response=response, retry_after=0)
    if 400 <= status < 500:
        return PermanentClientError(f"Collector rejected spans ({status})", status_code=status, response=response)
    if status >= 500:
        return PermanentServerError(f"Collector failed ({status})", status_code=status, response=response)
    return TransportError(f"Unexpected response status {status}", status_code=status, response=response)


def _terminal_result(error: TransportError) -> ExportResult:
    if isinstance(error, ExportTimeoutError):
        return ExportResult.timeout(error)
    return ExportResult.failed(error)
