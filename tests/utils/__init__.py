"""Test utilities for spanpipe."""

from .collector_server import CollectorTestServer
from .test_helpers import create_test_span, wait_for_spans, wait_until

__all__ = [
    "wait_for_spans",
    "wait_until",
    "create_test_span",
    "CollectorTestServer",
]
