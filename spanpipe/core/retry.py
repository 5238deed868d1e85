"""Backoff schedule for export retries."""

from __future__ import annotations

import math
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from .config import RetryConfig

# Jitter spreads each delay uniformly over +/- this fraction
JITTER_FRACTION = 0.25


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Delay before retry number ``attempt`` (1-based).

    ``initial * base ** (attempt - 1)``, capped at ``max_delay_seconds`` and
    jittered by +/-25% when ``config.jitter`` is set.
    """
    exponent = max(attempt - 1, 0)
    delay = config.initial_delay_seconds * (config.exponential_base**exponent)
    delay = min(delay, config.max_delay_seconds)
    if config.jitter and delay > 0:
        delay *= random.uniform(1 - JITTER_FRACTION, 1 + JITTER_FRACTION)
    return delay


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header value into seconds.

    Accepts delta-seconds ("120") or an HTTP-date. Returns None when the
    header is missing, malformed or does not point to the future.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return None
        if when is None:
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - (now or datetime.now(timezone.utc))).total_seconds()

    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds
