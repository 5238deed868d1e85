"""Attribute sanitization: exclusion, blank dropping and size bounding.

Every attribute value that leaves process memory goes through ``prepare``:

1. If the key itself is excluded, the value is dropped.
2. Mapping values lose every nested key whose dot-path (relative to the
   attribute key) is excluded.
3. Blank values (None, "", empty sequences, empty mappings) are dropped.
4. Strings are cut to ``max_attribute_size`` UTF-8 bytes on a character
   boundary; sequences keep a deterministic prefix that fits the same budget;
   mappings are JSON encoded and then cut like strings.

The functions here are pure and never raise for any input.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from ..instrumentation.utils.serialization import serialize_value
from .config import SanitizationPolicy


# Size model for sequences: "[" + "]" around the elements, ", " between them
SEQUENCE_BRACKETS_SIZE = 2
SEQUENCE_SEPARATOR_SIZE = 2


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) == 0
    return False


def _utf8_boundary(encoded: bytes, limit: int) -> int:
    """Largest cut point <= limit that does not split a multi-byte character."""
    if limit >= len(encoded):
        return len(encoded)
    cut = limit
    # encoded[cut] is the first dropped byte; a continuation byte means the
    # character it belongs to started before the cut.
    while cut > 0 and (encoded[cut] & 0xC0) == 0x80:
        cut -= 1
    return cut


def truncate_string(value: str, max_bytes: int) -> str:
    """Return the longest prefix of ``value`` whose UTF-8 encoding fits in ``max_bytes``."""
    if max_bytes <= 0:
        return ""
    if len(value) * 4 <= max_bytes:
        return value
    encoded = value.encode("utf-8", errors="surrogatepass")
    if len(encoded) <= max_bytes:
        return value
    cut = _utf8_boundary(encoded, max_bytes)
    return encoded[:cut].decode("utf-8", errors="surrogatepass")


def element_size(value: Any) -> int:
    text = value if isinstance(value, str) else str(value)
    return len(text.encode("utf-8", errors="surrogatepass"))


def serialized_size(values: Sequence[Any]) -> int:
    """Size of a sequence under the sanitizer's size model."""
    if not values:
        return SEQUENCE_BRACKETS_SIZE
    return (
        SEQUENCE_BRACKETS_SIZE
        + sum(element_size(v) for v in values)
        + SEQUENCE_SEPARATOR_SIZE * (len(values) - 1)
    )


def truncate_sequence(values: Sequence[Any], max_size: int) -> Sequence[Any]:
    """
    Keep the longest prefix of ``values`` that fits ``max_size``.

    The first element that does not fit is cut to the remaining budget if it
    is a string (and kept when something is left of it); anything else at that
    position, and every later element, is dropped.
    """
    current = SEQUENCE_BRACKETS_SIZE
    for i, element in enumerate(values):
        separator = SEQUENCE_SEPARATOR_SIZE if i > 0 else 0
        size = element_size(element) + separator
        if current + size <= max_size:
            current += size
            continue

        kept = list(values[:i])
        remaining = max_size - current - separator
        if isinstance(element, str) and remaining > 0:
            tail = truncate_string(element, remaining)
            if tail:
                kept.append(tail)
        return kept
    return values


def redact(value: Mapping[str, Any], prefix: str, policy: SanitizationPolicy) -> dict[str, Any]:
    """Copy ``value`` without the entries whose ``prefix.key`` path is excluded."""
    redacted: dict[str, Any] = {}
    for key, item in value.items():
        path = f"{prefix}.{key}"
        if policy.is_excluded(path):
            continue
        if isinstance(item, Mapping):
            item = redact(item, path, policy)
        redacted[key] = item
    return redacted


def _encode_mapping(value: Mapping[str, Any]) -> str:
    return json.dumps(serialize_value(value), ensure_ascii=False, default=str)


def prepare(key: str, value: Any, policy: SanitizationPolicy) -> Optional[Any]:
    """Sanitize one attribute value. ``None`` means the attribute must not be stored."""
    if policy.is_excluded(key):
        return None

    if isinstance(value, Mapping):
        value = redact(value, key, policy)

    if is_blank(value):
        return None

    max_size = policy.max_attribute_size

    if isinstance(value, Mapping):
        value = _encode_mapping(value)

    if isinstance(value, str):
        result: Any = truncate_string(value, max_size)
    elif isinstance(value, (list, tuple)):
        result = truncate_sequence(value, max_size)
    else:
        # bool/int/float are not size bounded; unknown types are left to the SDK
        return value

    if is_blank(result):
        return None
    return result


def sanitize_attributes(
    attributes: Optional[Mapping[str, Any]], policy: SanitizationPolicy
) -> dict[str, Any]:
    """Apply ``prepare`` to every entry and leave out the dropped ones."""
    if not attributes:
        return {}
    sanitized: dict[str, Any] = {}
    for key, value in attributes.items():
        prepared = prepare(key, value, policy)
        if prepared is not None:
            sanitized[key] = prepared
    return sanitized
